"""
Version tags — ordering and normalization.

Tags are compared with version-sort semantics, the same ordering as
``git tag --sort=v:refname`` and ``sort -V``: the tag is split into
runs of digits and non-digits, digit runs compare numerically, text
runs compare lexically, and a tag that is a strict prefix of another
sorts first. One leading ``v`` is ignored.

Pre-release suffixes are NOT special-cased. ``v1.0.0-beta`` extends
``v1.0.0`` and therefore sorts after it. Use a tag pattern to keep
pre-releases out of the candidate set.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

_RUN = re.compile(r"\d+|\D+")


def strip_v(tag: str) -> str:
    """Drop a single leading ``v``/``V`` (``v1.2.0`` → ``1.2.0``)."""
    if len(tag) > 1 and tag[0] in "vV":
        return tag[1:]
    return tag


def image_tag(version: str) -> str:
    """Container image tag for a version tag (leading ``v`` removed)."""
    return strip_v(version.strip())


def version_key(tag: str) -> tuple:
    """Sort key implementing version-sort for a tag string.

    Each run becomes ``(0, int)`` for digits and ``(1, str)`` for text,
    so a number never compares against a string directly. The raw tag is
    appended last to make the order total: ``v1.0`` and ``1.0`` are
    distinct tags with the same version.
    """
    runs = tuple(
        (0, int(run)) if run.isdigit() else (1, run)
        for run in _RUN.findall(strip_v(tag))
    )
    return (runs, tag)


def sort_versions(tags: Iterable[str]) -> list[str]:
    """Return the tags in ascending version order."""
    return sorted(tags, key=version_key)


def latest_version(
    tags: Iterable[str],
    pattern: str | re.Pattern[str] | None = None,
) -> str | None:
    """Highest tag under version-sort, or None if there are no candidates.

    Args:
        tags: Raw tag names (blank entries are ignored).
        pattern: Optional regex; only tags it fully matches are considered.
    """
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern
    candidates = [t.strip() for t in tags if t and t.strip()]
    if regex is not None:
        candidates = [t for t in candidates if regex.fullmatch(t)]
    if not candidates:
        return None
    return max(candidates, key=version_key)
