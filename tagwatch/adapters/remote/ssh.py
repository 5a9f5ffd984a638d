"""
SSH adapter — remote directory creation and file transfer.

The build runner uses this to place the deployment descriptor and the
project's secrets on the runtime host. Host key checking is disabled
to match an unattended runner talking to a freshly provisioned VM;
point ``known_hosts`` at a real file to turn it back on.
"""

from __future__ import annotations

import shutil

from tagwatch.adapters.base import ExecutionContext, OperationAdapter
from tagwatch.adapters.shell.command import run_process
from tagwatch.core.models.action import Receipt

DEFAULT_TIMEOUT = 60


class SshAdapter(OperationAdapter):
    """ssh/scp operations against one remote host.

    Action params:
        operation (str): 'mkdir' or 'copy'.
        host (str): Remote host.
        user (str): Remote user.
        remote_path (str): Target directory or file on the host.
        local_path (str): Source file or directory (copy).
        recursive (bool): Copy a directory's contents (copy).
        timeout (int): Timeout in seconds (default: 60).
    """

    operations = frozenset({"mkdir", "copy"})
    required_params = {
        "mkdir": ("host", "user", "remote_path"),
        "copy": ("host", "user", "remote_path", "local_path"),
    }

    def __init__(
        self,
        identity_file: str | None = None,
        known_hosts: str | None = None,
        connect_timeout: int = 15,
    ):
        self._identity_file = identity_file
        self._known_hosts = known_hosts
        self._connect_timeout = connect_timeout

    @property
    def name(self) -> str:
        return "ssh"

    def is_available(self) -> bool:
        return shutil.which("ssh") is not None and shutil.which("scp") is not None

    # ── Operations ──────────────────────────────────────────────

    def _op_mkdir(self, ctx: ExecutionContext) -> Receipt:
        target = f"{ctx.param('user')}@{ctx.param('host')}"
        return self._run(
            ["ssh", *self._options(), target, "mkdir", "-p", ctx.param("remote_path")],
            ctx,
        )

    def _op_copy(self, ctx: ExecutionContext) -> Receipt:
        source = ctx.param("local_path")
        args = ["scp", *self._options()]
        if ctx.param("recursive", False):
            args.append("-r")
            # trailing "/." copies the directory's contents, not the directory
            source = source.rstrip("/") + "/."
        destination = f"{ctx.param('user')}@{ctx.param('host')}:{ctx.param('remote_path')}"
        return self._run([*args, source, destination], ctx)

    # ── Helpers ─────────────────────────────────────────────────

    def _options(self) -> list[str]:
        opts = [
            "-o",
            "BatchMode=yes",
            "-o",
            f"ConnectTimeout={self._connect_timeout}",
        ]
        if self._known_hosts:
            opts += ["-o", f"UserKnownHostsFile={self._known_hosts}"]
        else:
            opts += ["-o", "StrictHostKeyChecking=no", "-o", "UserKnownHostsFile=/dev/null"]
        if self._identity_file:
            opts += ["-i", self._identity_file]
        return opts

    def _run(self, argv: list[str], ctx: ExecutionContext) -> Receipt:
        receipt = run_process(
            argv,
            adapter=self.name,
            action_id=ctx.action.id,
            timeout=ctx.param("timeout", DEFAULT_TIMEOUT),
        )
        receipt.metadata["operation"] = ctx.param("operation")
        # ssh exits 255 for connection and authentication failures
        if receipt.failed and receipt.metadata.get("return_code") == 255:
            receipt.metadata["connection_error"] = True
        return receipt
