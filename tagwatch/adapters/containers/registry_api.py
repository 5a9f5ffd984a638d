"""
Registry API adapter — tag listing over the Docker Registry HTTP API v2.

Only one endpoint is needed: ``GET /v2/<repository>/tags/list``.
A repository the registry has never seen answers 404 ``NAME_UNKNOWN``;
that is a normal "nothing pushed yet" state and is reported as a
successful receipt with no tags.
"""

from __future__ import annotations

import base64
import json
import logging
import socket
import time
import urllib.error
import urllib.request
from urllib.parse import quote

from tagwatch.adapters.base import ExecutionContext, OperationAdapter
from tagwatch.core.models.action import Receipt

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15
USER_AGENT = "tagwatch/1.0"


class RegistryApiAdapter(OperationAdapter):
    """Read-only access to a private image registry.

    Action params:
        operation (str): 'list-tags'.
        base_url (str): e.g. ``http://localhost:5000``.
        repository (str): Image repository path, e.g. ``demo``.
        username / password (str): Optional basic-auth credentials.
        timeout (int): Timeout in seconds (default: 15).

    Receipt metadata:
        http_status (int): Response status (when a response arrived).
        tags (list[str]): Tag names (list-tags, on success).
        retryable (bool): False for failures retrying cannot fix
                          (rejected credentials, malformed payload).
    """

    operations = frozenset({"list-tags"})
    required_params = {"list-tags": ("base_url", "repository")}

    @property
    def name(self) -> str:
        return "registry_api"

    def is_available(self) -> bool:
        return True  # stdlib HTTP client

    def _op_list_tags(self, ctx: ExecutionContext) -> Receipt:
        base_url = ctx.param("base_url").rstrip("/")
        repository = quote(ctx.param("repository").strip("/"), safe="/")
        url = f"{base_url}/v2/{repository}/tags/list"
        timeout = ctx.param("timeout", DEFAULT_TIMEOUT)

        headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
        username, password = ctx.param("username"), ctx.param("password")
        if username:
            token = base64.b64encode(f"{username}:{password or ''}".encode()).decode()
            headers["Authorization"] = f"Basic {token}"

        start = time.monotonic()
        req = urllib.request.Request(url, headers=headers, method="GET")
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                status = resp.status
                body = resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as e:
            return self._http_error(ctx, url, e, start)
        except (urllib.error.URLError, socket.timeout, TimeoutError, ConnectionError) as e:
            reason = getattr(e, "reason", e)
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"Registry unreachable at {url}: {reason}",
                duration_ms=_elapsed(start),
                metadata={"url": url, "retryable": True},
            )

        try:
            payload = json.loads(body) if body.strip() else {}
        except json.JSONDecodeError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=ctx.action.id,
                error=f"Malformed tag list from {url}: {e}",
                duration_ms=_elapsed(start),
                metadata={"url": url, "http_status": status, "retryable": False},
            )

        # "tags": null is what the registry returns once every tag was deleted
        tags = (payload.get("tags") if isinstance(payload, dict) else None) or []
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=body,
            duration_ms=_elapsed(start),
            metadata={"url": url, "http_status": status, "tags": [str(t) for t in tags]},
        )

    def _http_error(
        self,
        ctx: ExecutionContext,
        url: str,
        error: urllib.error.HTTPError,
        start: float,
    ) -> Receipt:
        if error.code == 404:
            logger.debug("Repository not found in registry: %s", url)
            return Receipt.success(
                adapter=self.name,
                action_id=ctx.action.id,
                duration_ms=_elapsed(start),
                metadata={"url": url, "http_status": 404, "tags": [], "not_found": True},
            )
        retryable = error.code not in (400, 401, 403)
        return Receipt.failure(
            adapter=self.name,
            action_id=ctx.action.id,
            error=f"Registry returned HTTP {error.code} for {url}",
            duration_ms=_elapsed(start),
            metadata={"url": url, "http_status": error.code, "retryable": retryable},
        )


def _elapsed(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
