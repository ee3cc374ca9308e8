import configparser
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import yaml

from connection.gateway import Credentials
from connection.node_address import DEFAULT_PORT, NodeAddress
from monitoring.prober import DISCOVERY_MODES
from replication.elector import TIE_BREAK_POLICIES


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class GaleraSettings:
    available_when_donor: bool = False
    disable_when_read_only: bool = False


@dataclass(frozen=True)
class MonitorSettings:
    primary: NodeAddress
    credentials: Credentials
    replication_credentials: Credentials
    replicas: Tuple[NodeAddress, ...] = ()
    discovery: str = "processlist"
    replica_port: int = DEFAULT_PORT
    socket: Optional[str] = None
    refresh_interval: float = 3.0
    long_write_threshold: int = 10
    max_delay: int = 5
    gtid_wait_timeout: float = 30.0
    tie_break: str = "first"
    demote_old_primary: bool = True
    journal_path: str = "switchover_journal.json"
    galera: GaleraSettings = field(default_factory=GaleraSettings)


def read_credentials_file(path: str) -> Credentials:
    """
    Reads user/password from the [mysql] or [client] section of a my.cnf
    style file. Without a user key the current OS user is used.
    """
    path = os.path.expanduser(path)
    parser = configparser.ConfigParser(allow_no_value=True, strict=False, interpolation=None)
    if not parser.read(path):
        raise ConfigError(f"Could not load credentials file {path}")

    for name in ("mysql", "client"):
        if parser.has_section(name):
            section = parser[name]
            break
    else:
        raise ConfigError(f"No [mysql] or [client] section found in {path}")

    if "password" not in section:
        raise ConfigError(f"No password key found in {path}")
    user = section.get("user") or os.environ.get("USER", "")
    return Credentials(user=user, password=section.get("password") or "")


def _credentials(value, field_name: str) -> Credentials:
    if isinstance(value, str):
        # "user:password" pair
        user, _, password = value.partition(":")
        return Credentials(user, password)
    if isinstance(value, dict) and value.get("user"):
        return Credentials(str(value["user"]), str(value.get("password") or ""))
    raise ConfigError(f"'{field_name}' must be a user:password pair or a mapping with a user key")


def _address(value, field_name: str, default_port: int = DEFAULT_PORT) -> NodeAddress:
    try:
        return NodeAddress.parse(str(value), default_port)
    except ValueError as e:
        raise ConfigError(f"'{field_name}': {e}")


def _positive(value, field_name: str, cast=int):
    try:
        number = cast(value)
    except (TypeError, ValueError):
        raise ConfigError(f"'{field_name}' must be a number")
    if number < 0:
        raise ConfigError(f"'{field_name}' must not be negative")
    return number


class ConfigLoader:
    def __init__(self, config_path: str):
        self.config_path = config_path

    def load(self) -> Dict[str, Any]:
        try:
            with open(self.config_path, "r") as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigError(f"Config file {self.config_path} not found")
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}")
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {self.config_path} must contain a mapping")
        return data

    def load_settings(self) -> MonitorSettings:
        return build_settings(self.load())


def build_settings(cfg: Dict[str, Any]) -> MonitorSettings:
    if not cfg.get("primary"):
        raise ConfigError("No primary host specified")
    primary = _address(cfg["primary"], "primary")

    if cfg.get("credentials_file"):
        credentials = read_credentials_file(cfg["credentials_file"])
    elif cfg.get("credentials"):
        credentials = _credentials(cfg["credentials"], "credentials")
    else:
        raise ConfigError("No user/password pair specified")

    if not cfg.get("replication_credentials"):
        raise ConfigError("No replication user/password pair specified")
    replication_credentials = _credentials(cfg["replication_credentials"], "replication_credentials")

    replica_port = _positive(cfg.get("replica_port", DEFAULT_PORT), "replica_port")
    replicas = tuple(
        _address(r, "replicas", replica_port) for r in (cfg.get("replicas") or [])
    )
    # a configured replica list switches discovery to static unless told otherwise
    discovery = cfg.get("discovery", "static" if replicas else "processlist")
    if discovery not in DISCOVERY_MODES:
        raise ConfigError(f"Unknown discovery mode '{discovery}'")
    if discovery == "static" and not replicas:
        raise ConfigError("Static discovery needs a list of replicas")

    tie_break = cfg.get("tie_break", "first")
    if tie_break not in TIE_BREAK_POLICIES:
        raise ConfigError(f"Unknown tie-break policy '{tie_break}'")

    galera_cfg = cfg.get("galera") or {}
    return MonitorSettings(
        primary=primary,
        credentials=credentials,
        replication_credentials=replication_credentials,
        replicas=replicas,
        discovery=discovery,
        replica_port=replica_port,
        socket=cfg.get("socket"),
        refresh_interval=_positive(cfg.get("refresh_interval", 3), "refresh_interval", float),
        long_write_threshold=_positive(cfg.get("long_write_threshold", 10), "long_write_threshold"),
        max_delay=_positive(cfg.get("max_delay", 5), "max_delay"),
        gtid_wait_timeout=_positive(cfg.get("gtid_wait_timeout", 30), "gtid_wait_timeout", float),
        tie_break=tie_break,
        demote_old_primary=bool(cfg.get("demote_old_primary", True)),
        journal_path=str(cfg.get("journal_path", "switchover_journal.json")),
        galera=GaleraSettings(
            available_when_donor=bool(galera_cfg.get("available_when_donor", False)),
            disable_when_read_only=bool(galera_cfg.get("disable_when_read_only", False)),
        ),
    )
