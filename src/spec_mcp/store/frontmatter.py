"""YAML frontmatter reading and writing for file-backed specs."""

import logging
import re
from datetime import date, datetime, timezone
from typing import Any

import yaml

logger = logging.getLogger(__name__)

_FRONTMATTER = re.compile(r"\A---\n(.*?)\n---\n?", re.DOTALL)


def parse_frontmatter(content: str, file_path: str) -> tuple[dict[str, Any], str]:
    """
    Split markdown content into its YAML frontmatter and body.

    Content without a frontmatter block, or with invalid YAML, yields an
    empty mapping and the content unchanged.

    Args:
        content: The full markdown content
        file_path: Path used in log messages

    Returns:
        Tuple of (frontmatter mapping, body)
    """
    match = _FRONTMATTER.match(content)
    if not match:
        return {}, content

    try:
        raw = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        logger.debug("Invalid YAML frontmatter in %s: %s", file_path, e)
        return {}, content

    if not isinstance(raw, dict):
        return {}, content

    return raw, content[match.end():]


def render_frontmatter(data: dict[str, Any], body: str) -> str:
    """Serialize a mapping and a body back into a frontmatter document."""
    header = yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    return f"---\n{header}---\n{body}"


def to_datetime(value: Any) -> datetime | None:
    """Coerce a frontmatter timestamp (string, date or datetime) to a datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    return datetime.fromisoformat(str(value))


def slugify(title: str) -> str:
    """Make a filesystem-friendly slug from a title."""
    slug = re.sub(r"[^\w\s-]", "", title.lower())
    slug = re.sub(r"[-\s]+", "-", slug).strip("-")
    return slug[:60] or "spec"
