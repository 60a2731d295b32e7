"""Edge cache directives and invalidation tags for market listings."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from app.core.config import settings

SHORT_LIVED = "public, s-maxage=10, stale-while-revalidate=30"
LONG_LIVED = "public, s-maxage=60, stale-while-revalidate=300"

_TAG_UNSAFE = re.compile(r"[^a-z0-9_-]+")


def normalize_tag(value: str) -> str:
    return _TAG_UNSAFE.sub("-", value.strip().lower()).strip("-")


def search_tag(search: str) -> str:
    """Tag for a search term; terms with no ASCII-safe characters use a digest."""
    term = normalize_tag(search)
    if not term:
        term = hashlib.sha1(search.strip().lower().encode("utf-8")).hexdigest()[:12]
    return f"search-{term}"


@dataclass(frozen=True)
class CachePolicy:
    cache_control: str
    tags: List[str]

    def headers(self, tag_header: Optional[str] = None) -> Dict[str, str]:
        return {
            "Cache-Control": self.cache_control,
            tag_header or settings.CACHE_TAG_HEADER: ",".join(self.tags),
        }


class CachePolicyAdvisor:
    """Search and forced-fresh responses are short-lived; plain listings cache longer."""

    def __init__(self, domain_tag: Optional[str] = None):
        self.domain_tag = domain_tag or settings.CACHE_DOMAIN_TAG

    def advise(self, origin_type: str = "all", search: str = "", fresh: bool = False) -> CachePolicy:
        search = (search or "").strip()
        cache_control = SHORT_LIVED if search or fresh else LONG_LIVED

        tags = [self.domain_tag, "tokens", f"tokens-{normalize_tag(origin_type or 'all')}"]
        if search:
            tags.append(search_tag(search))
        return CachePolicy(cache_control=cache_control, tags=tags)
