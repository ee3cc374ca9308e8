'''
HealthAlertLogger is an Observer reacting when a replica's health changes.
A replica going bad is logged as a warning, a replica coming back to
"Running OK" as info. It keeps the latest alert per node so the HTTP layer
can show what is currently wrong.
'''

import logging
from typing import Dict

from monitoring.observer import HealthEvent, Observer

logger = logging.getLogger(__name__)


class HealthAlertLogger(Observer):
    def __init__(self):
        self.active: Dict[str, str] = {}

    def update(self, event: HealthEvent):
        node = event["node"]
        status = event["status"]
        if event.get("ok"):
            logger.info("[HealthAlert] %s recovered: %s (was %s)", node, status, event.get("previous"))
            self.active.pop(node, None)
        else:
            logger.warning("[HealthAlert] %s changed to %s (was %s)", node, status, event.get("previous"))
            self.active[node] = status
