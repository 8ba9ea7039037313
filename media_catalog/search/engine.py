"""
Tag/attribute search over an immutable snapshot.

Semantics:
  - every required tag must be present, matched against each tag's
    normalized form *or* its name (`camera` matches `camera=alpha`);
  - for every attribute filter the record's value must be in the allowed
    set (OR within a name, AND across names);
  - results keep catalog order; `total` counts every match while only the
    requested page is materialised.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from .. import config
from ..models import MediaRecord, Snapshot, TagKind


def normalize_token(token: str) -> Optional[str]:
    trimmed = token.strip()
    return trimmed.lower() if trimmed else None


def normalize_page(page: int) -> int:
    return page if page >= 1 else 1


def normalize_page_size(page_size: int) -> int:
    if page_size <= 0:
        return config.DEFAULT_PAGE_SIZE
    return min(page_size, config.MAX_PAGE_SIZE)


@dataclass(frozen=True)
class SearchQuery:
    """
    Normalized search input. Construction never fails: tags are lowercased
    and deduplicated (a bare string counts as one tag), empty attribute
    filters dropped, page/page_size brought into range. Filters are exposed
    read-only so a query stays hashable.
    """
    required_tags: Tuple[str, ...] = ()
    attribute_filters: Mapping[str, FrozenSet[str]] = field(default_factory=dict)
    page: int = 1
    page_size: int = config.DEFAULT_PAGE_SIZE

    def __post_init__(self):
        required = self.required_tags
        if isinstance(required, str):
            required = (required,)

        tags = []
        for tag in required:
            normalized = normalize_token(tag)
            if normalized and normalized not in tags:
                tags.append(normalized)

        filters: Dict[str, FrozenSet[str]] = {}
        for key, values in self.attribute_filters.items():
            name = normalize_token(key)
            if not name:
                continue
            if isinstance(values, str):
                values = (values,)
            value_set = frozenset(v for v in (normalize_token(v) for v in values) if v)
            if value_set:
                filters[name] = filters.get(name, frozenset()) | value_set

        object.__setattr__(self, "required_tags", tuple(tags))
        object.__setattr__(self, "attribute_filters", MappingProxyType(filters))
        object.__setattr__(self, "page", normalize_page(self.page))
        object.__setattr__(self, "page_size", normalize_page_size(self.page_size))

    def __hash__(self):
        filters = frozenset(self.attribute_filters.items())
        return hash((self.required_tags, filters, self.page, self.page_size))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass
class SearchResult:
    items: List[MediaRecord]
    total: int
    page: int
    page_size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "total": self.total,
            "page": self.page,
            "pageSize": self.page_size,
        }


def search(snapshot: Snapshot, query: SearchQuery) -> SearchResult:
    """Pure read over `snapshot`; safe to call concurrently with catalog swaps."""
    start_index = query.offset
    collected: List[MediaRecord] = []
    matched_total = 0

    for media in snapshot.media:
        if not matches_required_tags(media, query.required_tags):
            continue
        if not matches_attributes(media, query.attribute_filters):
            continue

        if matched_total >= start_index and len(collected) < query.page_size:
            collected.append(media)
        matched_total += 1

    return SearchResult(
        items=collected,
        total=matched_total,
        page=query.page,
        page_size=query.page_size,
    )


def matches_required_tags(media: MediaRecord, required_tags: Iterable[str]) -> bool:
    required_tags = tuple(required_tags)
    if not required_tags:
        return True
    tag_set = set()
    for tag in media.tags:
        tag_set.add(tag.normalized)
        tag_set.add(tag.name)
    return all(tag in tag_set for tag in required_tags)


def matches_attributes(media: MediaRecord, filters: Mapping[str, FrozenSet[str]]) -> bool:
    for key, allowed_values in filters.items():
        value = media.attributes.get(key)
        if value is not None and value.lower() in allowed_values:
            continue

        # Fall back to any key/value tag carrying this name
        if any(
            tag.kind == TagKind.KEY_VALUE and tag.name == key and tag.value in allowed_values
            for tag in media.tags
        ):
            continue

        return False

    return True
