'''
GTID handling. A GTID reads "domain-server_id-sequence"; only the sequence
is used to order replicas, and only between GTIDs of the same domain.
Callers comparing sequences must check same_domain() first.
'''

from dataclasses import dataclass

MAX_SEQUENCE = 2 ** 64 - 1


class GtidParseError(ValueError):
    pass


@dataclass(frozen=True)
class Gtid:
    domain: int
    server_id: int
    sequence: int

    @classmethod
    def parse(cls, value: str) -> "Gtid":
        if value is None or not str(value).strip():
            raise GtidParseError("Empty GTID")
        value = str(value).strip()
        if "," in value:
            raise GtidParseError(f"GTID '{value}' spans several domains")

        fields = value.split("-")
        if len(fields) != 3:
            raise GtidParseError(f"GTID '{value}' must have 3 dash-separated fields")
        try:
            domain, server_id, sequence = (int(f) for f in fields)
        except ValueError:
            raise GtidParseError(f"GTID '{value}' has a non numeric field")
        if min(domain, server_id, sequence) < 0 or sequence > MAX_SEQUENCE:
            raise GtidParseError(f"GTID '{value}' is out of range")
        return cls(domain, server_id, sequence)

    def same_domain(self, other: "Gtid") -> bool:
        return self.domain == other.domain

    def __str__(self):
        return f"{self.domain}-{self.server_id}-{self.sequence}"
