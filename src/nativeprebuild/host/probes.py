"""External command probes used by platform detection.

Probes are blocking so their output stays ordered with log lines. Each
probe returns the command's text output, or None when the command is
missing, times out, or (unless accepted) exits non-zero.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Callable, Sequence

logger = logging.getLogger(__name__)

PROBE_TIMEOUT_S = 10.0

ProbeFn = Callable[..., str | None]


def run_probe(argv: Sequence[str], *, accept_failure: bool = False) -> str | None:
    """Run a detection command and return stdout+stderr.

    Args:
        argv: Command and arguments.
        accept_failure: Return output even when the exit code is non-zero
            (musl's ldd prints its version and exits 1).

    Returns:
        Combined output text, or None if the probe failed.
    """
    cmd = shlex.join(argv)
    try:
        proc = subprocess.run(
            list(argv),
            capture_output=True,
            text=True,
            timeout=PROBE_TIMEOUT_S,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("Probe unavailable", extra={"cmd": cmd, "error": str(e)})
        return None

    output = (proc.stdout or "") + (proc.stderr or "")
    if proc.returncode != 0 and not accept_failure:
        logger.debug("Probe failed", extra={"cmd": cmd, "returncode": proc.returncode})
        return None

    logger.debug("Probe ok", extra={"cmd": cmd, "output": output.strip()[:200]})
    return output
