#!/usr/bin/env python3
# Listen on an OS-assigned port, print that port (digits only, flushed) so the
# caller can connect, then echo one read of the single connection to stdout.
#
# stdout is "<port><payload>" with no separator between the two.
import sys

from portecho.listener import ListenerError, echo_once_ephemeral
from portecho.logger import get_listener_logger


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if argv:
        print("Usage: portecho-ephemeral", file=sys.stderr)
        raise SystemExit(2)
    try:
        echo_once_ephemeral()
    except ListenerError as e:
        get_listener_logger("ephemeral").error(f"[ephemeral] {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
