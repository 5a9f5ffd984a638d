"""
Docker adapter — image and compose operations.

Provides build/push for the build runner and login/ps/compose for the
deployment poller. Uses the docker CLI — never the Docker API directly.
"""

from __future__ import annotations

import shutil

from tagwatch.adapters.base import ExecutionContext, OperationAdapter
from tagwatch.adapters.shell.command import run_process
from tagwatch.core.models.action import Receipt

DEFAULT_TIMEOUT = 300


class DockerAdapter(OperationAdapter):
    """Docker and Docker Compose operations.

    Action params:
        operation (str): One of 'build', 'push', 'login', 'ps',
                         'compose-pull', 'compose-up'.
        image (str): Full image reference (build, push).
        dockerfile (str): Dockerfile path (build).
        context_dir (str): Build context (build).
        registry (str): Registry host:port (login).
        username / password (str): Credentials (login); the password is
                                   passed on stdin, never on argv.
        name_filter (str): Container name filter (ps).
        compose_file (str): Descriptor path (compose-*, default: cwd lookup).
        timeout (int): Timeout in seconds (default: 300).
    """

    operations = frozenset({"build", "push", "login", "ps", "compose-pull", "compose-up"})
    required_params = {
        "build": ("image", "dockerfile", "context_dir"),
        "push": ("image",),
        "login": ("registry", "username", "password"),
    }

    @property
    def name(self) -> str:
        return "docker"

    def is_available(self) -> bool:
        return shutil.which("docker") is not None

    # ── Operations ──────────────────────────────────────────────

    def _op_build(self, ctx: ExecutionContext) -> Receipt:
        return self._docker(
            [
                "build",
                "-t",
                ctx.param("image"),
                "-f",
                ctx.param("dockerfile"),
                ctx.param("context_dir"),
            ],
            ctx,
        )

    def _op_push(self, ctx: ExecutionContext) -> Receipt:
        return self._docker(["push", ctx.param("image")], ctx)

    def _op_login(self, ctx: ExecutionContext) -> Receipt:
        return self._docker(
            [
                "login",
                ctx.param("registry"),
                "--username",
                ctx.param("username"),
                "--password-stdin",
            ],
            ctx,
            input_text=ctx.param("password"),
        )

    def _op_ps(self, ctx: ExecutionContext) -> Receipt:
        args = ["ps", "--format", "{{.Names}} -> {{.Image}}"]
        if ctx.param("name_filter"):
            args[1:1] = ["--filter", f"name={ctx.param('name_filter')}"]
        receipt = self._docker(args, ctx)
        if receipt.ok:
            receipt.metadata["containers"] = [
                line.strip() for line in receipt.output.splitlines() if line.strip()
            ]
        return receipt

    def _op_compose_pull(self, ctx: ExecutionContext) -> Receipt:
        return self._docker([*self._compose(ctx), "pull"], ctx)

    def _op_compose_up(self, ctx: ExecutionContext) -> Receipt:
        # up -d only recreates containers whose image or config changed
        return self._docker([*self._compose(ctx), "up", "-d"], ctx)

    # ── Helpers ─────────────────────────────────────────────────

    def _compose(self, ctx: ExecutionContext) -> list[str]:
        args = ["compose"]
        if ctx.param("compose_file"):
            args += ["-f", ctx.param("compose_file")]
        return args

    def _docker(
        self,
        args: list[str],
        ctx: ExecutionContext,
        input_text: str | None = None,
    ) -> Receipt:
        receipt = run_process(
            ["docker", *args],
            adapter=self.name,
            action_id=ctx.action.id,
            cwd=ctx.working_dir,
            timeout=ctx.param("timeout", DEFAULT_TIMEOUT),
            input_text=input_text,
        )
        receipt.metadata["operation"] = ctx.param("operation")
        return receipt
