"""
Git adapter — mirrors, tag listing and tagged checkouts.

Uses the git CLI — never raw API calls. Operations that talk to a
remote (mirror, fetch-tags, clone-tag) are the ones callers wrap with
a retry policy.
"""

from __future__ import annotations

import os
import shutil

from tagwatch.adapters.base import ExecutionContext, OperationAdapter
from tagwatch.adapters.shell.command import run_process
from tagwatch.core.models.action import Receipt

DEFAULT_TIMEOUT = 120


class GitAdapter(OperationAdapter):
    """Git operations used by the build runner.

    Action params:
        operation (str): One of 'mirror', 'fetch-tags', 'list-tags',
                         'verify-mirror', 'clone-tag'.
        url (str): Remote URL (mirror, clone-tag).
        path (str): Bare mirror directory (mirror, fetch-tags, list-tags,
                    verify-mirror).
        tag (str): Tag to check out (clone-tag).
        dest (str): Checkout directory (clone-tag).
        timeout (int): Timeout in seconds (default: 120).
    """

    operations = frozenset({"mirror", "fetch-tags", "list-tags", "verify-mirror", "clone-tag"})
    required_params = {
        "mirror": ("url", "path"),
        "fetch-tags": ("path",),
        "list-tags": ("path",),
        "verify-mirror": ("path",),
        "clone-tag": ("url", "tag", "dest"),
    }

    @property
    def name(self) -> str:
        return "git"

    def is_available(self) -> bool:
        return shutil.which("git") is not None

    # ── Operations ──────────────────────────────────────────────

    def _op_mirror(self, ctx: ExecutionContext) -> Receipt:
        """Create a bare clone used only for tag discovery."""
        return self._git(["clone", "--bare", "--quiet", ctx.param("url"), ctx.param("path")], ctx)

    def _op_fetch_tags(self, ctx: ExecutionContext) -> Receipt:
        argv = ["--git-dir", ctx.param("path"), "fetch", "--tags", "--force", "--quiet"]
        return self._git(argv, ctx)

    def _op_verify_mirror(self, ctx: ExecutionContext) -> Receipt:
        return self._git(["--git-dir", ctx.param("path"), "rev-parse", "--git-dir"], ctx)

    def _op_list_tags(self, ctx: ExecutionContext) -> Receipt:
        receipt = self._git(["--git-dir", ctx.param("path"), "tag", "--list"], ctx)
        if receipt.ok:
            tags = [t.strip() for t in receipt.output.splitlines() if t.strip()]
            receipt.metadata["tags"] = tags
        return receipt

    def _op_clone_tag(self, ctx: ExecutionContext) -> Receipt:
        """Shallow checkout of exactly one tagged revision."""
        return self._git(
            [
                "clone",
                "--quiet",
                "--depth",
                "1",
                "--branch",
                ctx.param("tag"),
                ctx.param("url"),
                ctx.param("dest"),
            ],
            ctx,
        )

    # ── Helpers ─────────────────────────────────────────────────

    def _git(self, args: list[str], ctx: ExecutionContext) -> Receipt:
        receipt = run_process(
            ["git", *args],
            adapter=self.name,
            action_id=ctx.action.id,
            cwd=ctx.working_dir,
            timeout=ctx.param("timeout", DEFAULT_TIMEOUT),
            env=_non_interactive_env(),
        )
        receipt.metadata["operation"] = ctx.param("operation")
        return receipt


def _non_interactive_env() -> dict[str, str]:
    """Environment that makes git fail instead of prompting for credentials."""
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    return env
