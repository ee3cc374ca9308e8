'''
Subject generates health events. In the monitor the subject is the
ReplicationHealthChecker, which sees every new topology snapshot and knows
when a replica's health changed.
'''

import logging
from typing import List

from monitoring.observer import HealthEvent, Observer

logger = logging.getLogger(__name__)


class Subject:
    def __init__(self):
        self._observers: List[Observer] = []

    def add_observer(self, observer: Observer):
        if observer not in self._observers:
            self._observers.append(observer)

    def remove_observer(self, observer: Observer):
        if observer in self._observers:
            self._observers.remove(observer)

    def notify(self, event: HealthEvent):
        logger.debug("[Subject] %s: %s -> %s", event["node"], event["previous"], event["status"])
        # observers may unsubscribe while being notified
        for observer in list(self._observers):
            observer.update(event)
