"""
Filename tag parsing.

Filenames carry their own tags: tokens are separated by `_`, `+` or
whitespace, and `key-value` / `key:value` tokens become attributes.

    sunset_coast+location-okinawa_rating-5.png
      -> sunset, coast, location=okinawa, rating=5
"""
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from ..models import Tag, TagKind

TOKEN_SPLIT = re.compile(r"[_+\s]")
KV_DELIMITERS = (":", "-")


@dataclass
class TagParseResult:
    tags: List[Tag] = field(default_factory=list)
    invalid_tokens: List[str] = field(default_factory=list)


def parse_filename_tokens(filename: str) -> TagParseResult:
    """
    Parses the tag tokens from a filename (without directories).

    Never raises: tokens that cannot be classified are collected in
    `invalid_tokens` in encounter order and left out of `tags`.
    """
    # Everything after the first dot is extension
    stem = filename.split(".", 1)[0]
    result = TagParseResult()

    for token in TOKEN_SPLIT.split(stem):
        raw = token.strip()
        if not raw:
            continue

        tag = _classify_token(raw)
        if tag is None:
            result.invalid_tokens.append(raw)
        else:
            result.tags.append(tag)

    return result


def fold_attributes(tags: Iterable[Tag]) -> Dict[str, str]:
    """Key/value tags as an attribute map. First occurrence of a name wins."""
    attributes: Dict[str, str] = {}
    for tag in tags:
        if tag.kind == TagKind.KEY_VALUE and tag.value is not None:
            attributes.setdefault(tag.name, tag.value)
    return attributes


def _classify_token(token: str) -> Optional[Tag]:
    if any(d in token for d in KV_DELIMITERS):
        # A delimiter with an empty side is invalid, not a simple tag
        parts = _split_kv(token, ":") or _split_kv(token, "-")
        if parts is None:
            return None
        key, value = parts
        return Tag.key_value(token, key, value)

    if not token.strip():
        return None
    return Tag.simple(token, token)


def _split_kv(token: str, delimiter: str) -> Optional[Tuple[str, str]]:
    if delimiter not in token:
        return None
    key, value = token.split(delimiter, 1)
    key = key.strip()
    value = value.strip()
    if not key or not value:
        return None
    return key, value
