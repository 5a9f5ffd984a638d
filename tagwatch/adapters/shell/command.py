"""
Shell command adapter — run an external command and capture output.

This is the most fundamental adapter. ``run_process`` is shared by the
git, docker and ssh adapters so that every subprocess in the runner is
bounded by a timeout and reported the same way.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
import time
from collections.abc import Sequence
from pathlib import Path

from tagwatch.adapters.base import Adapter, ExecutionContext
from tagwatch.core.models.action import Receipt

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300


def run_process(
    argv: Sequence[str],
    *,
    adapter: str,
    action_id: str,
    cwd: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    input_text: str | None = None,
    env: dict[str, str] | None = None,
    redact: Sequence[str] = (),
) -> Receipt:
    """Run ``argv`` without a shell and turn the outcome into a Receipt.

    Args:
        argv: Program and arguments.
        adapter: Adapter name recorded on the receipt.
        action_id: Action id recorded on the receipt.
        cwd: Working directory.
        timeout: Hard limit in seconds.
        input_text: Data written to stdin (e.g. a password).
        env: Full environment for the child (None = inherit).
        redact: Strings masked in the logged/recorded command line.
    """
    display = " ".join(shlex.quote(a) for a in argv)
    for secret in redact:
        if secret:
            display = display.replace(secret, "***")

    logger.debug("Executing: %s (cwd=%s)", display, cwd)
    start = time.monotonic()

    try:
        result = subprocess.run(
            list(argv),
            cwd=cwd,
            input=input_text,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
        )
    except subprocess.TimeoutExpired:
        return Receipt.failure(
            adapter=adapter,
            action_id=action_id,
            error=f"Command timed out after {timeout}s",
            duration_ms=int((time.monotonic() - start) * 1000),
            metadata={"command": display, "timeout": timeout},
        )
    except OSError as e:
        return Receipt.failure(
            adapter=adapter,
            action_id=action_id,
            error=f"Command execution error: {e}",
            metadata={"command": display},
        )

    elapsed_ms = int((time.monotonic() - start) * 1000)
    stdout = result.stdout.strip()
    stderr = result.stderr.strip()

    if result.returncode == 0:
        return Receipt.success(
            adapter=adapter,
            action_id=action_id,
            output=stdout,
            duration_ms=elapsed_ms,
            metadata={"command": display, "return_code": 0, "stderr": stderr},
        )
    return Receipt.failure(
        adapter=adapter,
        action_id=action_id,
        error=stderr or f"Command exited with code {result.returncode}",
        duration_ms=elapsed_ms,
        metadata={"command": display, "return_code": result.returncode, "stdout": stdout},
    )


class ShellCommandAdapter(Adapter):
    """Execute an external command and capture output.

    Action params:
        argv (list[str]): Program and arguments (preferred).
        command (str): Command line, split with shlex when argv is absent.
        input (str): Optional stdin payload.
        timeout (int): Timeout in seconds (default: 300).
    """

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        if not context.param("argv") and not context.param("command"):
            return False, "Missing required param: 'argv' or 'command'"

        cwd = context.working_dir
        if cwd and not Path(cwd).is_dir():
            return False, f"Working directory does not exist: {cwd}"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        argv = context.param("argv") or shlex.split(context.param("command", ""))
        return run_process(
            argv,
            adapter=self.name,
            action_id=context.action.id,
            cwd=context.working_dir,
            timeout=context.param("timeout", DEFAULT_TIMEOUT),
            input_text=context.param("input"),
        )
