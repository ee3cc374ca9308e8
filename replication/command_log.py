# record of switchover runs, kept so that partial failures are not lost on restart

import json
import logging
from typing import List, Tuple

from connection.node_address import NodeAddress
from replication.commands import deserialize_command

logger = logging.getLogger(__name__)


class SwitchoverJournal:
    """
    Stores the outcome of every switchover run as JSON. Nodes left mis-wired
    by a run stay listed as follow-ups until the operator acknowledges them.
    """
    def __init__(self, path="switchover_journal.json"):
        self.path = path
        self.entries = []

        # loading existing journal if file exists
        try:
            with open(self.path, "r") as file:
                self.entries = json.load(file)
        except FileNotFoundError:
            self.entries = []

    def record(self, result):
        entry = result.to_dict()
        entry["acknowledged"] = False
        self.entries.append(entry)
        self.save()
        if result.partial_failure:
            logger.error("[Journal] Switchover with follow-ups recorded in %s", self.path)

    def save(self):
        with open(self.path, "w") as file:
            json.dump(self.entries, file, indent=4)

    def last(self):
        return self.entries[-1] if self.entries else None

    def follow_ups(self) -> List[dict]:
        """Node outcomes still waiting for an operator, oldest run first."""
        pending = []
        for entry in self.entries:
            if entry.get("acknowledged"):
                continue
            pending.extend(o for o in entry["outcomes"] if o["follow_up"])
        return pending

    def failed_commands(self) -> List[Tuple[NodeAddress, object]]:
        """The commands that failed on each follow-up node, rebuilt as command objects."""
        failed = []
        for outcome in self.follow_ups():
            if outcome.get("failed_command"):
                address = NodeAddress.parse(outcome["address"])
                failed.append((address, deserialize_command(outcome["failed_command"])))
        return failed

    def acknowledge(self):
        for entry in self.entries:
            entry["acknowledged"] = True
        self.save()
