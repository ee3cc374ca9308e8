from abc import ABC, abstractmethod
from typing import Any, Dict, Tuple


class AdminCommand(ABC):
    '''
    Administrative action on a database node, kept as a typed value.
    The SQL text is produced only when the gateway executes it, so the
    switchover logic never builds statements by hand.
    '''
    # False for commands that do not change node state or topology
    mutating = True

    @property
    def name(self) -> str:
        return self.serialize()["type"]

    @abstractmethod
    def statement(self) -> Tuple[str, Dict[str, Any]]:
        "SQL text with named bind parameters"
        pass

    def check_result(self, value):
        "Hook for commands that return a value, called with the first column of the first row"
        pass

    @abstractmethod
    def serialize(self) -> dict:
        "Converting command to JSON-like dict so it can be stored in the journal."
        pass

    @staticmethod
    @abstractmethod
    def deserialize(data: dict):
        "Reconstructing command from dict"
        pass

    def __eq__(self, other):
        return type(self) is type(other) and self.serialize() == other.serialize()

    def __hash__(self):
        return hash(tuple(sorted(self.serialize().items())))

    def __repr__(self):
        return f"<{type(self).__name__} {self.serialize()}>"
