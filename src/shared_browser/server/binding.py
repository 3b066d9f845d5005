"""Listening-socket binding with increment-and-retry on busy ports."""

import errno
import logging
import socket

from shared_browser.exceptions import BindError

logger = logging.getLogger(__name__)

MAX_BIND_ATTEMPTS = 50


def _open_socket(host: str, port: int) -> socket.socket:
    family = socket.AF_INET6 if ':' in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


def bind_socket(host: str, port: int, strict: bool = False, max_attempts: int = MAX_BIND_ATTEMPTS) -> socket.socket:
    """Bind ``host:port``, moving to the next port while the current one is taken.

    Raises:
        BindError: In strict mode on the first busy port, after
            ``max_attempts`` busy ports, or on any other bind failure.
    """
    for attempt in range(max_attempts):
        candidate = port + attempt
        try:
            return _open_socket(host, candidate)
        except OSError as e:
            if e.errno != errno.EADDRINUSE:
                raise BindError(f'Cannot bind {host}:{candidate}: {e}', candidate) from e
            if strict:
                raise BindError(f'Port {candidate} in use (strict port mode)', candidate) from e
            if attempt + 1 < max_attempts:
                logger.warning(f'Port {candidate} in use, trying {candidate + 1}')

    raise BindError(f'No free port in {port}-{port + max_attempts - 1}', port)
