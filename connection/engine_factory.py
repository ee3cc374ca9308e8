from typing import Dict, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine

from connection.gateway import Credentials
from connection.node_address import NodeAddress


class EngineFactory:
    """
    Builds one SQLAlchemy engine per node address, lazily, and keeps them
    so every probe cycle reuses the same pool.
    """
    def __init__(self, credentials: Credentials, driver: str = "mysql+pymysql",
                 socket: Optional[str] = None, connect_timeout: int = 5):
        self.credentials = credentials
        self.driver = driver
        self.socket = socket
        self.connect_timeout = connect_timeout
        self.engines: Dict[NodeAddress, Engine] = {}

    def url_for(self, address: NodeAddress) -> URL:
        query = {}
        # a local node without a TCP listener is reached through its socket
        if self.socket and address.host == "localhost":
            query["unix_socket"] = self.socket
        return URL.create(
            self.driver,
            username=self.credentials.user,
            password=self.credentials.password or None,
            host=address.host,
            port=address.port,
            query=query,
        )

    def engine_for(self, address: NodeAddress) -> Engine:
        engine = self.engines.get(address)
        if engine is None:
            engine = create_engine(
                self.url_for(address),
                echo=False,
                future=True,
                # admin statements (locks, CHANGE MASTER) must not run inside a transaction
                isolation_level="AUTOCOMMIT",
                pool_pre_ping=True,
                connect_args={"connect_timeout": self.connect_timeout},
            )
            self.engines[address] = engine
        return engine

    def dispose(self):
        for engine in self.engines.values():
            engine.dispose()
        self.engines = {}
