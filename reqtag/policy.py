"""reqtag policy - tag/request header and query parameter merging."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable

from reqtag.models import NotFoundError, Tag

logger = logging.getLogger(__name__)


def _merge(tag_maps: Iterable[dict[str, str]], request_map: dict[str, str]) -> dict[str, str]:
    merged: dict[str, str] = {}
    for tag_map in tag_maps:
        merged.update(tag_map or {})
    # Request values override every tag
    merged.update(request_map or {})
    return merged


def merge_headers(
    tag_header_maps: Iterable[dict[str, str]],
    request_headers: dict[str, str],
) -> dict[str, str]:
    """Merge tag headers in list order, then request headers.

    Precedence: request > last-listed tag > ... > first-listed tag.
    """
    return _merge(tag_header_maps, request_headers)


def merge_params(
    tag_param_maps: Iterable[dict[str, str]],
    request_params: dict[str, str],
) -> dict[str, str]:
    """Same as merge_headers, for query parameters."""
    return _merge(tag_param_maps, request_params)


def fetch_tags(
    tag_ids: list[str],
    lookup: Callable[[str], Tag],
    max_workers: int = 4,
) -> list[Tag]:
    """Look up tags, possibly in parallel, keeping tag_ids order.

    Ids the lookup cannot find are skipped. Order matters because later
    tags override earlier ones when merging.
    """
    if not tag_ids:
        return []

    def _get(tag_id: str) -> Tag | None:
        try:
            return lookup(tag_id)
        except NotFoundError:
            logger.warning("Tag %s is attached to a request but no longer exists", tag_id)
            return None

    workers = max(1, min(max_workers, len(tag_ids)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        # map() yields in submission order regardless of completion order
        results = list(pool.map(_get, tag_ids))
    return [t for t in results if t is not None]
