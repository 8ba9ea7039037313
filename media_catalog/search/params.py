"""
Request-boundary parsing for search parameters.

Malformed input raises ValidationFailed here, before a SearchQuery exists,
so the engine itself has no error path.

Accepted keys (query-string style):
    tags=sunset,coast
    attributes[rating]=4,5
    page=2
    pageSize=30
"""
import re
from typing import Dict, List, Mapping, Optional

from .. import config
from ..exceptions import ValidationFailed
from .engine import SearchQuery

ATTRIBUTE_KEY = re.compile(r"^attributes\[(?P<name>[^\]]+)\]$")


def parse_search_params(params: Mapping[str, str]) -> SearchQuery:
    tags = parse_tags(params.get("tags"))
    attributes = parse_attributes(params)
    page = _parse_non_negative_int(params.get("page"), "page", default=1)
    page_size = _parse_non_negative_int(params.get("pageSize"), "pageSize", default=config.DEFAULT_PAGE_SIZE)
    return SearchQuery(tuple(tags), attributes, page, page_size)


def parse_tags(raw: Optional[str]) -> List[str]:
    """Comma-separated tags. Present-but-empty is an error, absent is no filter."""
    if raw is None:
        return []
    tags = split_values(raw)
    if not tags:
        raise ValidationFailed("tags query parameter must contain at least one value")
    return tags


def parse_attributes(params: Mapping[str, str]) -> Dict[str, List[str]]:
    attributes: Dict[str, List[str]] = {}
    for key, value in params.items():
        match = ATTRIBUTE_KEY.match(key)
        if not match:
            continue
        name = match.group("name").strip().lower()
        values = split_values(value)
        if name and values:
            attributes.setdefault(name, []).extend(values)
    return attributes


def split_values(raw: str) -> List[str]:
    return [token.strip().lower() for token in raw.split(",") if token.strip()]


def _parse_non_negative_int(raw: Optional[str], name: str, default: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{name} must be a non-negative integer, got {raw!r}")
    if value < 0:
        raise ValidationFailed(f"{name} must be a non-negative integer, got {raw!r}")
    return value
