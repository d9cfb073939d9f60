"""Client side of the control protocol.

One command per call: encode, send one datagram, and for Kill wait (with a
bound) for the daemon's Success reply.
"""

import logging
import os
import socket

from procsup.core.config import SupervisorConfig
from procsup.core.protocol import (
    MAX_DATAGRAM_SIZE,
    AddProcess,
    ControlEvent,
    Kill,
    ProtocolError,
    Success,
    decode,
    encode,
)
from procsup.core.transport import TransportError, connect_endpoint

logger = logging.getLogger(__name__)


class ClientTimeoutError(TransportError):
    """Daemon did not reply within the allowed time."""

    pass


class CommandClient:
    """Send control events to a supervisor daemon.

    USAGE:
        client = CommandClient("127.0.0.1", 8080, timeout=5.0)
        client.send_add_process("web", "/usr/bin/python3", ["-m", "http.server"])
        client.send_kill()
    """

    def __init__(
        self,
        host: str,
        port: int,
        timeout: float = 5.0,
        max_datagram_size: int = MAX_DATAGRAM_SIZE,
    ):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.max_datagram_size = max_datagram_size

    @classmethod
    def from_config(cls, config: SupervisorConfig) -> "CommandClient":
        return cls(
            config.host,
            config.port,
            timeout=config.reply_timeout,
            max_datagram_size=config.max_datagram_size,
        )

    def send_kill(self) -> ControlEvent:
        """Ask the daemon to exit and wait for its acknowledgement.

        Returns:
            The decoded Success reply.

        Raises:
            ClientTimeoutError: No reply within ``timeout`` seconds.
            ProtocolError: The reply was not a Success event.
            TransportError: The daemon's port is unreachable or send failed.
        """
        sock = connect_endpoint(self.host, self.port)
        try:
            self._send(sock, Kill())
            sock.settimeout(self.timeout)
            try:
                data = sock.recv(self.max_datagram_size + 1)
            except socket.timeout as e:
                raise ClientTimeoutError(
                    f"No reply from {self.host}:{self.port} within {self.timeout}s"
                ) from e
            except ConnectionRefusedError as e:
                raise TransportError(
                    f"No supervisor listening on {self.host}:{self.port}"
                ) from e
            except OSError as e:
                raise TransportError(f"Receive failed: {e}") from e
        finally:
            sock.close()

        reply = decode(data, max_size=self.max_datagram_size)
        if not isinstance(reply, Success):
            raise ProtocolError(f"Expected Success reply, got {reply.t}")
        return reply

    def send_add_process(
        self,
        name: str,
        command: str,
        args: list[str] | None = None,
        pwd: str | None = None,
    ) -> AddProcess:
        """Submit a new managed process. Complete once the datagram is sent.

        ``pwd`` defaults to the caller's working directory. There is no
        acknowledgement for AddProcess, so success here only means the
        datagram left this host.
        """
        event = AddProcess.create(
            command=command,
            args=list(args or []),
            pwd=pwd if pwd is not None else os.getcwd(),
            name=name,
        )
        sock = connect_endpoint(self.host, self.port)
        try:
            self._send(sock, event)
        finally:
            sock.close()
        return event

    def _send(self, sock: socket.socket, event: Kill | AddProcess) -> None:
        data = encode(event, max_size=self.max_datagram_size)
        try:
            sock.send(data)
        except OSError as e:
            raise TransportError(f"Send to {self.host}:{self.port} failed: {e}") from e
        logger.debug(f"Sent {event.t} to {self.host}:{self.port}")


def request_kill(config: SupervisorConfig) -> ControlEvent:
    """Ask the configured daemon to exit. Bounded by ``config.reply_timeout``."""
    return CommandClient.from_config(config).send_kill()


def request_add_process(
    config: SupervisorConfig,
    name: str,
    command: str,
    args: list[str] | None = None,
    pwd: str | None = None,
) -> AddProcess:
    """Submit a process to the configured daemon. Returns once sent."""
    return CommandClient.from_config(config).send_add_process(name, command, args, pwd)
