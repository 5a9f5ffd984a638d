"""
Deployment descriptor — point a compose file at a new image tag.

The descriptor is parsed, the matching services' ``image`` keys are
replaced and the document is serialized back. A service matches when
the last path segment of its image, without tag or digest, is the
project's repository name; the registry prefix in front of it (another
host, a port, an unexpanded ``${REGISTRY_URL}``) does not matter.
Other services are left untouched. Comments in the original file do not
survive the round trip.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

import yaml

from tagwatch.core.errors import DescriptorMissing

logger = logging.getLogger(__name__)


def image_repository(reference: str) -> str:
    """Image reference without its tag or digest.

    ``localhost:5000/demo:1.2`` → ``localhost:5000/demo``; the port in
    the registry host is not mistaken for a tag.
    """
    reference = reference.strip().split("@", 1)[0]
    head, _, last = reference.rpartition("/")
    if ":" in last:
        last = last.split(":", 1)[0]
    return f"{head}/{last}" if head else last


def image_name(reference: str) -> str:
    """Repository name without registry prefix (``host:5000/team/demo:1`` → ``demo``)."""
    return image_repository(reference).rpartition("/")[2]


def load_descriptor(path: Path) -> dict:
    """Parse a compose file.

    Raises:
        DescriptorMissing: If the file is absent, unreadable or has no
            ``services`` mapping.
    """
    if not path.is_file():
        raise DescriptorMissing(f"Deployment descriptor not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise DescriptorMissing(f"Cannot parse {path}: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("services"), dict):
        raise DescriptorMissing(f"{path} has no 'services' mapping")
    return data


def update_image_references(
    path: Path,
    name: str,
    new_reference: str,
) -> list[str]:
    """Rewrite the image of every service whose repository is ``name``.

    Returns:
        Names of the services that reference the repository (whether or
        not their image actually changed).

    Raises:
        DescriptorMissing: If the descriptor is unusable or no service
            uses the repository.
    """
    wanted = image_name(name)
    data = load_descriptor(path)

    matched: list[str] = []
    changed = False
    for service_name, service in data["services"].items():
        if not isinstance(service, dict):
            continue
        image = service.get("image")
        if not isinstance(image, str) or image_name(image) != wanted:
            continue
        matched.append(str(service_name))
        if image != new_reference:
            service["image"] = new_reference
            changed = True

    if not matched:
        raise DescriptorMissing(f"No service in {path} uses an image named {wanted}")

    if changed:
        _write_atomic(path, yaml.safe_dump(data, sort_keys=False, default_flow_style=False))
        logger.info("Descriptor %s now points %s at %s", path, ", ".join(matched), new_reference)
    else:
        logger.debug("Descriptor %s already references %s", path, new_reference)
    return matched


def _write_atomic(path: Path, content: str) -> None:
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".descriptor_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        # keep the operator's file mode
        os.chmod(tmp, path.stat().st_mode & 0o777)
        os.replace(tmp, path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise
