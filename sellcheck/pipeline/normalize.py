"""
Query normalization and cache keying.

normalize_query is idempotent and cache_key is a pure function of the
normalized query, condition and cache version.
"""

import hashlib
import re
from typing import Optional, Union

from sellcheck.config import CACHE
from .models import Condition, NormalizedQuery

_WHITESPACE = re.compile(r"\s+")


def normalize_query(query: str) -> str:
    """Trim, lower-case and collapse internal whitespace runs."""
    return _WHITESPACE.sub(" ", (query or "").strip().lower())


def build_query(query: str, condition: Union[str, Condition, None] = None) -> NormalizedQuery:
    return NormalizedQuery(text=normalize_query(query), condition=Condition.parse(condition))


def cache_key(query: NormalizedQuery, version: Optional[str] = None) -> str:
    """MD5 fingerprint of (version, normalized query, condition)."""
    payload = f"{version or CACHE.version}:{normalize_query(query.text)}"
    if query.condition:
        payload += f"|{query.condition.value}"
    return hashlib.md5(payload.encode("utf-8")).hexdigest()
