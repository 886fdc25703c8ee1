#!/usr/bin/env python3
# Listen on the port given as the only argument, accept one connection and
# print whatever arrives in a single read (at most 1024 bytes) to stdout.
import sys

from portecho.config import parse_port
from portecho.listener import ListenerError, echo_once
from portecho.logger import get_listener_logger


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1:
        print("Usage: portecho-fixed <port>", file=sys.stderr)
        raise SystemExit(2)
    try:
        port = parse_port(argv[0])
    except ValueError as e:
        print(f"Usage: portecho-fixed <port> ({e})", file=sys.stderr)
        raise SystemExit(2)
    try:
        echo_once(port)
    except ListenerError as e:
        get_listener_logger(str(port)).error(f"[fixed] {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
