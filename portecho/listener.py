"""
Single-shot TCP echo listener.

Binds one IPv4 listening socket, accepts exactly one connection, performs a
single read of at most ``bufsize`` bytes and writes those bytes, unmodified,
to an output stream (standard output for the command-line programs).

Two ways of choosing the port:

- explicit port (``echo_once``)
- ephemeral port (``echo_once_ephemeral``): the OS picks the port and the
  decimal port number is written and flushed before ``accept`` blocks, so the
  caller can discover where to connect.
"""

import socket
import sys
from typing import BinaryIO, Optional, Tuple

from portecho.config import ListenerConfig
from portecho.logger import get_listener_logger


class ListenerError(RuntimeError):
    """A socket or output step of the listener failed."""

    def __init__(self, step: str, exc: OSError):
        super().__init__(f"{step} failed: {exc}")
        self.step = step


def _stdout() -> BinaryIO:
    return sys.stdout.buffer


class SingleShotListener:
    def __init__(self, config: ListenerConfig, logger=None):
        self.config = config
        self.logger = logger or get_listener_logger("ephemeral" if config.port == 0 else str(config.port))
        self._sock: Optional[socket.socket] = None
        self._served = False

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def open(self):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            try:
                sock.bind((self.config.host, self.config.port))
            except OSError as e:
                raise ListenerError("bind", e) from e
            try:
                sock.listen(self.config.backlog)
            except OSError as e:
                raise ListenerError("listen", e) from e
        except ListenerError:
            sock.close()
            raise
        self._sock = sock
        self.logger.info(f"listening on {self.config.host}:{self.port} backlog={self.config.backlog}")

    @property
    def port(self) -> int:
        if self._sock is None:
            raise ListenerError("getsockname", OSError("listener is not open"))
        return self._sock.getsockname()[1]

    def announce(self, out: Optional[BinaryIO] = None):
        """Write the bound port as decimal digits (no newline) and flush."""
        if out is None:
            out = _stdout()
        _write(out, str(self.port).encode("ascii"))

    def serve_once(self, out: Optional[BinaryIO] = None) -> bytes:
        """Accept one connection, echo one read of it to ``out``, close both sockets."""
        if self._sock is None or self._served:
            raise ListenerError("accept", OSError("listener already served its connection"))
        self._served = True
        if out is None:
            out = _stdout()
        try:
            if self.config.announce_port:
                self.announce(out)
            try:
                conn, peer = self._sock.accept()
            except OSError as e:
                raise ListenerError("accept", e) from e
            self.logger.info(f"accepted connection from {peer[0]}:{peer[1]}")
            with conn:
                try:
                    data = conn.recv(self.config.bufsize)
                except OSError as e:
                    raise ListenerError("recv", e) from e
            self.logger.info(f"received {len(data)} bytes (cap {self.config.bufsize})")
            _write(out, data)
            return data
        finally:
            self.close()

    def close(self):
        if self._sock is not None:
            self._sock.close()
            self._sock = None


def _write(out: BinaryIO, data: bytes):
    try:
        out.write(data)
        out.flush()
    except OSError as e:
        raise ListenerError("write", e) from e


def echo_once(port: int, out: Optional[BinaryIO] = None) -> bytes:
    cfg = ListenerConfig(port=port)
    with SingleShotListener(cfg) as listener:
        return listener.serve_once(out)


def echo_once_ephemeral(out: Optional[BinaryIO] = None) -> Tuple[int, bytes]:
    cfg = ListenerConfig(port=0, announce_port=True)
    with SingleShotListener(cfg) as listener:
        port = listener.port
        return port, listener.serve_once(out)
