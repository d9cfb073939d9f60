"""Core modules for the process supervisor."""

from procsup.core.client import ClientTimeoutError, CommandClient, request_add_process, request_kill
from procsup.core.config import ConfigError, SupervisorConfig, load_config
from procsup.core.daemon import DaemonState, SupervisorDaemon, run_server
from procsup.core.launcher import LaunchTracker, ProcessLauncher, SpawnError
from procsup.core.models import LaunchOutcome, LoadResult, LoadStatus, ManagedProcessSpec
from procsup.core.protocol import ProtocolError
from procsup.core.registry import PersistenceError, ProcessRegistry
from procsup.core.transport import TransportError

__all__ = [
    "ClientTimeoutError",
    "CommandClient",
    "ConfigError",
    "DaemonState",
    "LaunchOutcome",
    "LaunchTracker",
    "LoadResult",
    "LoadStatus",
    "ManagedProcessSpec",
    "PersistenceError",
    "ProcessLauncher",
    "ProcessRegistry",
    "ProtocolError",
    "SpawnError",
    "SupervisorConfig",
    "SupervisorDaemon",
    "TransportError",
    "load_config",
    "request_add_process",
    "request_kill",
    "run_server",
]
