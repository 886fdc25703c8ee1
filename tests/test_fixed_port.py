import os
import sys
import socket
import subprocess

import pytest

from portecho.harness import ListenerProcess, find_free_port, send_with_retry

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))


def _run_fixed(*args):
    return subprocess.Popen(
        [sys.executable, "-m", "portecho.fixed_port", *args],
        cwd=ROOT, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
    )


def test_fixed_port_echoes_hello():
    port = find_free_port()
    proc = _run_fixed(str(port))
    try:
        send_with_retry("127.0.0.1", port, b"hello")
        out, err = proc.communicate(timeout=10)
        assert out == b"hello"
        assert proc.returncode == 0
    finally:
        if proc.poll() is None:
            proc.kill(); proc.wait()


def test_fixed_port_refuses_second_connection():
    port = find_free_port()
    with ListenerProcess.fixed(port) as lp:
        lp.send(b"first")
        result = lp.wait_output(timeout=10)
    assert result.payload == b"first"
    with pytest.raises(ConnectionRefusedError):
        socket.create_connection(("127.0.0.1", port), timeout=2).close()


def test_fixed_port_empty_connection():
    port = find_free_port()
    with ListenerProcess.fixed(port) as lp:
        lp.send(b"")
        result = lp.wait_output(timeout=10)
    assert result.payload == b""
    assert result.returncode == 0


def test_original_hello_world_payload():
    port = find_free_port()
    with ListenerProcess.fixed(port) as lp:
        lp.send(b"Hello, world!\n\n")
        result = lp.wait_output(timeout=10)
    assert len(result.payload) == len(b"Hello, world!\n\n")


@pytest.mark.parametrize("args", [[], ["1", "2"], ["abc"], ["-5"], ["65536"]])
def test_fixed_port_rejects_bad_arguments(args):
    proc = _run_fixed(*args)
    out, err = proc.communicate(timeout=10)
    assert proc.returncode == 2
    assert out == b""
    assert b"Usage:" in err


def test_fixed_port_in_use_exits_nonzero():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("0.0.0.0", 0))
        busy.listen(1)
        port = busy.getsockname()[1]
        proc = _run_fixed(str(port))
        out, err = proc.communicate(timeout=10)
    assert proc.returncode == 1
    assert out == b""
    assert b"bind failed" in err


def test_fixed_port_ignores_unknown_log_level():
    port = find_free_port()
    env = dict(os.environ, PORTECHO_LOG_LEVEL="verbose")
    proc = subprocess.Popen(
        [sys.executable, "-m", "portecho.fixed_port", str(port)],
        cwd=ROOT, env=env, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
    )
    try:
        send_with_retry("127.0.0.1", port, b"hello")
        out, err = proc.communicate(timeout=10)
        assert out == b"hello"
        assert proc.returncode == 0
        assert b"Traceback" not in err
    finally:
        if proc.poll() is None:
            proc.kill(); proc.wait()
