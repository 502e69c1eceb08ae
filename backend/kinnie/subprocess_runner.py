"""Helpers to run a Kinnie program in a short-lived, resource-limited worker.

`run_code_in_subprocess` launches `_subprocess_worker` (which follows a simple
JSON-over-stdin/stdout protocol), enforces a wall-clock timeout, and on POSIX
applies CPU-seconds and address-space limits before the worker starts.

Returns (returncode, stdout, stderr). A returncode of -1 means the worker
was killed because it ran past the timeout.

Note: rlimits reduce the blast radius of runaway programs; they are not a
substitute for container/VM isolation.
"""

import json
import os
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

# the directory that contains the `backend` package
PROJECT_ROOT = Path(__file__).resolve().parents[2]
WORKER_MODULE = "backend.kinnie._subprocess_worker"


def _make_posix_preexec(cpu_seconds: Optional[int], mem_limit_mb: Optional[int]):
    """Return a preexec_fn applying RLIMIT_CPU / RLIMIT_AS in the child."""
    def preexec():
        import resource

        if cpu_seconds is not None:
            resource.setrlimit(resource.RLIMIT_CPU, (int(cpu_seconds), int(cpu_seconds)))
        if mem_limit_mb is not None:
            mem_bytes = int(mem_limit_mb) * 1024 * 1024
            resource.setrlimit(resource.RLIMIT_AS, (mem_bytes, mem_bytes))
        # new session so a timeout kill does not signal the parent's group
        os.setsid()

    return preexec


def run_code_in_subprocess(
    code: str,
    settings: Optional[Dict[str, Any]] = None,
    timeout_s: int = 2,
    *,
    cpu_seconds: Optional[int] = 2,
    mem_limit_mb: Optional[int] = 256,
) -> Tuple[int, str, str]:
    """Run `code` with `settings` in the worker and return its raw outputs.

    Parameters:
      - code: Kinnie source text, sent to the worker as JSON on stdin.
      - settings: interpreter settings forwarded unchanged.
      - timeout_s: wall-clock timeout for the whole operation (seconds).
      - cpu_seconds: optional RLIMIT_CPU (seconds) applied on POSIX.
      - mem_limit_mb: optional RLIMIT_AS (MB) applied on POSIX.
    """
    # keep the child's environment minimal; PYTHONPATH lets an uninstalled
    # checkout import the `backend` package
    env = {"PATH": os.environ.get("PATH", ""), "PYTHONPATH": str(PROJECT_ROOT)}

    popen_kwargs: Dict[str, Any] = dict(
        args=[sys.executable, "-m", WORKER_MODULE],
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        env=env,
        cwd=str(PROJECT_ROOT),
        close_fds=True,
    )
    if os.name != "nt":
        popen_kwargs["preexec_fn"] = _make_posix_preexec(cpu_seconds, mem_limit_mb)

    proc = subprocess.Popen(**popen_kwargs)

    payload = json.dumps({"code": code, "settings": settings or {}})
    try:
        out, err = proc.communicate(payload, timeout=timeout_s)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.communicate()
        return -1, "", "TIMEOUT"

    return proc.returncode, out or "", err or ""
