#!/usr/bin/env python3
import os
import json
from datetime import datetime, timezone

from portecho.harness import ListenerProcess, find_free_port

DEFAULT_PAYLOAD = b"Hello, world!\n\n"


def probe(variant: str, payload: bytes = DEFAULT_PAYLOAD, outdir: str = None, timeout: float = 10.0) -> dict:
    """
    Run one listener program end to end and record what it echoed.

    variant is "fixed" (a free port is picked and passed on the command line)
    or "ephemeral" (the port is read from the program's stdout).
    """
    if variant == "fixed":
        proc = ListenerProcess.fixed(find_free_port())
    elif variant == "ephemeral":
        proc = ListenerProcess.ephemeral()
    else:
        raise SystemExit(f"Unknown variant {variant}")

    with proc:
        attempt = proc.send(payload)
        result = proc.wait_output(timeout=timeout)

    summary = {
        "tool": "portecho-probe",
        "variant": variant,
        "port": result.port,
        "connect_attempts": attempt,
        "sent_bytes": len(payload),
        "echoed_bytes": len(result.payload),
        "truncated": len(result.payload) < len(payload),
        "match": result.payload == payload[:len(result.payload)] and len(result.payload) > 0,
        "returncode": result.returncode,
        "stderr": result.stderr.decode("utf-8", errors="replace"),
        "probed_at": datetime.now(timezone.utc).isoformat(),
    }
    if outdir:
        os.makedirs(outdir, exist_ok=True)
        path = os.path.join(outdir, f"probe_{variant}.json")
        with open(path, "w") as fh:
            json.dump(summary, fh, indent=2)
        print("[probe] Summary written to", path)
    else:
        print(json.dumps(summary, indent=2))
    return summary


if __name__ == "__main__":
    import sys
    if len(sys.argv) < 2 or sys.argv[1] not in ("fixed", "ephemeral"):
        print("Usage: probe.py <fixed|ephemeral> [outdir]")
        raise SystemExit(2)
    s = probe(sys.argv[1], outdir=sys.argv[2] if len(sys.argv) > 2 else None)
    raise SystemExit(0 if s["match"] and s["returncode"] == 0 else 1)
