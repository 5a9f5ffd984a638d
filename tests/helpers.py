"""
Shared test data and fakes.
"""

from collections.abc import Callable
from pathlib import Path

from tagwatch.adapters.base import ExecutionContext
from tagwatch.core.models.action import Receipt

COMPOSE = """\
services:
  app:
    image: localhost:5000/demo:1.0.0
    ports:
      - "8080:80"
  db:
    image: postgres:16
"""

RELEASE_FILES = {
    "publish.yml": "project_name: demo-app\npre_publish_steps:\n  - make test\n",
    "docker/Dockerfile": "FROM alpine:3.20\n",
    "docker-compose.yml": COMPOSE,
}


def checkout(files: dict[str, str]) -> Callable[[ExecutionContext], Receipt]:
    """Mock 'clone' handler that writes ``files`` into the checkout dir."""

    def handler(ctx: ExecutionContext) -> Receipt:
        dest = Path(ctx.param("dest"))
        for rel, content in files.items():
            path = dest / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        return Receipt.success(adapter="git", action_id=ctx.action.id)

    return handler


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
