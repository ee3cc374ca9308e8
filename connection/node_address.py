from dataclasses import dataclass

DEFAULT_PORT = 3306


@dataclass(frozen=True)
class NodeAddress:
    """
    Identity of a database node. The role (primary / replica) is never stored
    here, it is derived from the topology the node was found in.
    """
    host: str
    port: int = DEFAULT_PORT

    @classmethod
    def parse(cls, value: str, default_port: int = DEFAULT_PORT) -> "NodeAddress":
        """
        "db1"        -> NodeAddress("db1", default_port)
        "db1:3307"   -> NodeAddress("db1", 3307)
        """
        if not value or not value.strip():
            raise ValueError("Empty node address")

        host, sep, port = value.strip().rpartition(":")
        if not sep:
            return cls(value.strip(), default_port)
        if not host:
            raise ValueError(f"Missing host in node address '{value}'")
        try:
            port_number = int(port)
        except ValueError:
            raise ValueError(f"Port is not an integer in node address '{value}'")
        if not 0 < port_number <= 65535:
            raise ValueError(f"Port out of range in node address '{value}'")
        return cls(host, port_number)

    def __str__(self):
        return f"{self.host}:{self.port}"
