"""Supervisor daemon: UDP command loop over the process registry.

Lifecycle:
    STARTING     bind the endpoint, load the registry, submit a launch for
                 every enabled spec (without waiting for any of them)
    LISTENING    receive -> decode -> dispatch, one datagram at a time
    TERMINATING  after acknowledging Kill; the socket is closed and run()
                 returns exit status 0

Launches are the only concurrent work. Everything else, including
registry writes, happens on the loop thread.
"""

import logging
import socket
from dataclasses import dataclass, field
from enum import Enum

from procsup.core.config import SupervisorConfig
from procsup.core.launcher import LaunchHook, LaunchTracker, ProcessLauncher
from procsup.core.models import LoadStatus
from procsup.core.protocol import (
    AddProcess,
    ControlEvent,
    Kill,
    ProtocolError,
    Restart,
    Start,
    Success,
    decode,
    encode,
)
from procsup.core.registry import PersistenceError, ProcessRegistry
from procsup.core.transport import TransportError, bind_endpoint

logger = logging.getLogger(__name__)


class DaemonState(str, Enum):
    """Lifecycle state of the daemon."""

    STARTING = "starting"
    LISTENING = "listening"
    TERMINATING = "terminating"


@dataclass
class DaemonSession:
    """Runtime-only endpoint state. Never persisted."""

    sock: socket.socket
    buffer_size: int
    last_peer: tuple | None = None

    @property
    def address(self) -> tuple:
        return self.sock.getsockname()


@dataclass
class DispatchResult:
    """What the loop should do after one datagram."""

    keep_running: bool = True
    event: ControlEvent | None = None
    errors: list[str] = field(default_factory=list)


class SupervisorDaemon:
    """Single-threaded command loop plus detached launches.

    USAGE:
        daemon = SupervisorDaemon(load_config())
        sys.exit(daemon.run())

    For tests, ``start()`` and ``serve_forever()`` can be called separately
    so the bound address (``session.address``) is known before serving.
    """

    def __init__(
        self,
        config: SupervisorConfig,
        registry: ProcessRegistry | None = None,
        launcher: ProcessLauncher | None = None,
        on_launch: LaunchHook | None = None,
    ):
        self.config = config
        self.registry = registry or ProcessRegistry(config.state_path)
        self.tracker = LaunchTracker(
            launcher=launcher,
            max_workers=config.max_launch_workers,
            on_launch=on_launch,
        )
        self.state = DaemonState.STARTING
        self.session: DaemonSession | None = None

    def start(self) -> DaemonSession:
        """Bind, load the registry and relaunch enabled specs.

        Raises:
            TransportError: If the endpoint cannot be bound.
        """
        if self.state != DaemonState.STARTING:
            raise RuntimeError(f"Daemon cannot start from state {self.state.value}")

        sock = bind_endpoint(self.config.host, self.config.port)
        # One extra byte so an oversized datagram is detected, not truncated
        self.session = DaemonSession(sock=sock, buffer_size=self.config.max_datagram_size + 1)
        logger.info(f"Listening on {self.session.address}")

        result = self.registry.load()
        if result.status == LoadStatus.CORRUPT:
            logger.warning(
                f"Starting with an empty registry because {self.registry.state_path} "
                f"could not be loaded"
            )

        enabled = result.enabled
        for spec in enabled:
            self.tracker.submit(spec)
        logger.info(
            f"Relaunching {len(enabled)} of {len(result.processes)} registered processes"
        )

        self.state = DaemonState.LISTENING
        return self.session

    def serve_forever(self) -> int:
        """Run the receive loop until Kill. Returns the exit status.

        Raises:
            TransportError: On a non-transient socket failure.
        """
        if self.state != DaemonState.LISTENING or self.session is None:
            raise RuntimeError("Daemon must be started before serving")

        keep_running = True
        try:
            while keep_running:
                try:
                    data, peer = self.session.sock.recvfrom(self.session.buffer_size)
                except ConnectionError as e:
                    # e.g. ICMP port unreachable from an earlier reply
                    logger.warning(f"Transient receive error: {e}")
                    continue
                except OSError as e:
                    raise TransportError(f"Receive failed: {e}") from e

                keep_running = self.handle_datagram(data, peer).keep_running
        finally:
            self.close()

        return 0

    def run(self) -> int:
        """Start and serve. Returns 0 after Kill."""
        self.start()
        return self.serve_forever()

    def handle_datagram(self, data: bytes, peer: tuple) -> DispatchResult:
        """Decode and dispatch one datagram. Never raises ProtocolError."""
        if self.session is None:
            raise RuntimeError("Daemon must be started before handling datagrams")
        self.session.last_peer = peer

        try:
            event = decode(data, max_size=self.config.max_datagram_size)
        except ProtocolError as e:
            logger.warning(f"Dropping datagram from {peer}: {e}")
            return DispatchResult(errors=[str(e)])

        logger.debug(f"Received {event!r} from {peer}")
        return self.dispatch(event, peer)

    def dispatch(self, event: ControlEvent, peer: tuple) -> DispatchResult:
        """Route a decoded event to its handler."""
        if isinstance(event, Kill):
            self._handle_kill(peer)
            return DispatchResult(keep_running=False, event=event)

        if isinstance(event, AddProcess):
            errors = self._handle_add_process(event)
            return DispatchResult(event=event, errors=errors)

        if isinstance(event, (Start, Restart)):
            logger.debug(f"{event.t} is reserved, ignoring")
        elif isinstance(event, Success):
            logger.debug(f"Ignoring unexpected Success from {peer}")

        return DispatchResult(event=event)

    def close(self) -> None:
        """Release the socket and the launch executor. Children keep running."""
        if self.session is not None:
            self.session.sock.close()
        self.tracker.shutdown(wait=False)

    def _handle_kill(self, peer: tuple) -> None:
        """Acknowledge, then stop listening whether or not the reply went out."""
        if self.session is None:
            raise RuntimeError("Daemon must be started before handling Kill")
        try:
            self.session.sock.sendto(encode(Success()), peer)
        except OSError as e:
            logger.error(f"Failed to acknowledge Kill to {peer}: {e}")
        logger.info(f"Kill received from {peer}, shutting down")
        self.state = DaemonState.TERMINATING

    def _handle_add_process(self, event: AddProcess) -> list[str]:
        """Persist the new spec, then launch it in the background."""
        payload = event.payload
        try:
            spec = self.registry.add(
                name=payload.name,
                command=payload.command,
                args=payload.args,
                pwd=payload.pwd,
            )
        except PersistenceError as e:
            logger.error(f"Rejected process {payload.name!r}: {e}")
            return [str(e)]

        self.tracker.submit(spec)
        return []


def run_server(config: SupervisorConfig) -> int:
    """Blocking entry point used by the CLI. Returns only after Kill."""
    return SupervisorDaemon(config).run()
