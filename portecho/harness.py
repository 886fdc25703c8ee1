"""
Client side of the echo listeners, for test suites.

Runs ``portecho.fixed_port`` / ``portecho.ephemeral_port`` as child processes,
connects to them (retrying while the child is still binding), sends a payload
and collects what the child echoed to its stdout.

Typical use::

    with ListenerProcess.ephemeral() as proc:
        proc.send(b"ping")
        result = proc.wait_output(timeout=5)
    assert result.payload == b"ping"
"""

import socket
import subprocess
import sys
import time
from typing import BinaryIO, List, Optional, Tuple

from pydantic import BaseModel

MAX_PORT_DIGITS = len("65535")


class EchoResult(BaseModel):
    port: int
    payload: bytes
    returncode: int
    stderr: bytes = b""


def find_free_port(host: str = "127.0.0.1") -> int:
    """Return a TCP port that was free on ``host`` at the time of the call."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        return s.getsockname()[1]


def send_with_retry(host: str, port: int, payload: bytes, attempts: int = 10, delay: float = 0.1) -> int:
    """
    Connect to host:port and send payload, retrying the connect while it is refused.

    Returns the 1-based attempt that succeeded. Raises ConnectionRefusedError
    once every attempt failed.
    """
    last: Optional[OSError] = None
    for attempt in range(1, attempts + 1):
        try:
            with socket.create_connection((host, port), timeout=max(delay, 1.0)) as s:
                s.sendall(payload)
            return attempt
        except OSError as e:
            last = e
            time.sleep(delay)
    raise ConnectionRefusedError(f"could not connect to {host}:{port} after {attempts} attempts: {last}")


def read_announced_port(stream: BinaryIO) -> Tuple[int, bytes]:
    """
    Read the port digits an ephemeral listener flushed before accepting.

    The digits are written in one flushed write, so a single short read
    returns all of them. Returns (port, extra) where extra is anything after
    the digits that was already read.
    """
    chunk = stream.read1(MAX_PORT_DIGITS) if hasattr(stream, "read1") else stream.read(MAX_PORT_DIGITS)
    if not chunk:
        raise ValueError("listener exited before announcing its port")
    digits = chunk
    for i, b in enumerate(chunk):
        if not 0x30 <= b <= 0x39:
            digits = chunk[:i]
            break
    if not digits:
        raise ValueError(f"expected port digits, got {chunk!r}")
    return int(digits), chunk[len(digits):]


class ListenerProcess:
    def __init__(self, module: str, args: List[str], port: Optional[int] = None, host: str = "127.0.0.1"):
        self.module = module
        self.args = list(args)
        self.host = host
        self._port = port
        self._extra = b""
        self._reaped = False
        self.proc: Optional[subprocess.Popen] = None

    @classmethod
    def fixed(cls, port: int, host: str = "127.0.0.1") -> "ListenerProcess":
        return cls("portecho.fixed_port", [str(port)], port=port, host=host)

    @classmethod
    def ephemeral(cls, host: str = "127.0.0.1") -> "ListenerProcess":
        return cls("portecho.ephemeral_port", [], host=host)

    def __enter__(self):
        if self.proc is None:
            self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()

    def start(self):
        self.proc = subprocess.Popen(
            [sys.executable, "-m", self.module, *self.args],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        if self._port is None:
            try:
                self._port, self._extra = read_announced_port(self.proc.stdout)
            except ValueError:
                self.stop()
                raise
        return self

    @property
    def port(self) -> int:
        if self._port is None:
            raise RuntimeError("listener process not started")
        return self._port

    def send(self, payload: bytes, attempts: int = 10, delay: float = 0.1) -> int:
        return send_with_retry(self.host, self.port, payload, attempts=attempts, delay=delay)

    def wait_output(self, timeout: float = 10.0) -> EchoResult:
        out, err = self.proc.communicate(timeout=timeout)
        self._reaped = True
        return EchoResult(
            port=self.port,
            payload=self._extra + (out or b""),
            returncode=self.proc.returncode,
            stderr=err or b"",
        )

    def stop(self):
        if self.proc is None or self._reaped:
            return
        if self.proc.poll() is None:
            self.proc.terminate()
        try:
            self.proc.communicate(timeout=5)
        except subprocess.TimeoutExpired:
            self.proc.kill()
            self.proc.communicate()
