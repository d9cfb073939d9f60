"""UDP endpoint helpers shared by the daemon and the client."""

import logging
import socket

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Socket bind, send or receive failure."""

    pass


def resolve_address(host: str, port: int) -> tuple[int, tuple]:
    """Resolve host/port to (address family, sockaddr) for UDP.

    Raises:
        TransportError: If the name does not resolve.
    """
    try:
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_DGRAM)
    except socket.gaierror as e:
        raise TransportError(f"Cannot resolve {host}:{port}: {e}") from e
    if not infos:
        raise TransportError(f"No address found for {host}:{port}")
    family, _, _, _, sockaddr = infos[0]
    return family, sockaddr


def bind_endpoint(host: str, port: int) -> socket.socket:
    """Create the daemon's listening socket.

    Raises:
        TransportError: If the address cannot be resolved or bound.
    """
    family, sockaddr = resolve_address(host, port)
    sock = socket.socket(family, socket.SOCK_DGRAM)
    try:
        sock.bind(sockaddr)
    except OSError as e:
        sock.close()
        raise TransportError(f"Cannot bind {host}:{port}: {e}") from e
    logger.debug(f"Bound UDP endpoint {sock.getsockname()}")
    return sock


def connect_endpoint(host: str, port: int) -> socket.socket:
    """Open an ephemeral socket connected to the daemon.

    The local side binds to the wildcard address of the peer's family, so
    only datagrams from the daemon's address are delivered back.

    Raises:
        TransportError: If the address cannot be resolved or connected.
    """
    family, sockaddr = resolve_address(host, port)
    local = ("::", 0) if family == socket.AF_INET6 else ("0.0.0.0", 0)
    sock = socket.socket(family, socket.SOCK_DGRAM)
    try:
        sock.bind(local)
        sock.connect(sockaddr)
    except OSError as e:
        sock.close()
        raise TransportError(f"Cannot connect to {host}:{port}: {e}") from e
    return sock
