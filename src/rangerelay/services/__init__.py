"""Service layer: connection supervisor, delivery, hosts and settings."""

from .agent import ContextAgent
from .delivery import CommandDelivery
from .host import ExecutionContext, LocalContext, LocalHost, TargetHost
from .settings import DEFAULT_ENDPOINT, Settings, SettingsStore
from .supervisor import Connection, ConnectionState, ReconnectBackoff, Supervisor

__all__ = [
    "CommandDelivery",
    "Connection",
    "ConnectionState",
    "ContextAgent",
    "DEFAULT_ENDPOINT",
    "ExecutionContext",
    "LocalContext",
    "LocalHost",
    "ReconnectBackoff",
    "Settings",
    "SettingsStore",
    "Supervisor",
    "TargetHost",
]
