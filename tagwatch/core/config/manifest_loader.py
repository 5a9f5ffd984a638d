"""
Manifest loader — reads ``publish.yml`` from a tagged checkout.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from tagwatch.core.errors import ManifestInvalid
from tagwatch.core.models.project import Manifest

logger = logging.getLogger(__name__)

MANIFEST_FILE = "publish.yml"


def load_manifest(workspace: Path, filename: str = MANIFEST_FILE) -> Manifest:
    """Parse and validate the manifest of a checked-out revision.

    Raises:
        ManifestInvalid: If the file is missing, is not a YAML mapping,
            or has no usable ``project_name``.
    """
    path = workspace / filename
    if not path.is_file():
        raise ManifestInvalid(f"{filename} not found in tagged revision")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ManifestInvalid(f"Cannot parse {filename}: {e}") from e

    if not isinstance(data, dict):
        raise ManifestInvalid(f"{filename} must be a mapping, got {type(data).__name__}")

    try:
        manifest = Manifest.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ManifestInvalid(f"Invalid {filename} ({fields}): {e.error_count()} error(s)") from e

    logger.debug(
        "Manifest for %s: %d pre / %d post steps",
        manifest.project_name,
        len(manifest.pre_publish_steps),
        len(manifest.post_publish_steps),
    )
    return manifest
