'''
Observer waits for health events and reacts to them.
HealthAlertLogger -> logs every replica whose health changed
'''

from abc import ABC, abstractmethod
from typing import TypedDict


class HealthEvent(TypedDict):
    """
    {
        "node": "10.0.0.2:3306",
        "status": "Running LATE: 4 sec",
        "previous": "Running OK",
        "ok": False
    }
    """
    node: str
    status: str
    previous: str
    ok: bool


class Observer(ABC):
    @abstractmethod
    def update(self, event: HealthEvent):
        pass
