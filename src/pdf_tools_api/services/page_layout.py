from __future__ import annotations

import logging
from pathlib import Path
from typing import Awaitable, Callable, Mapping, Sequence

from pydantic import TypeAdapter, ValidationError

from pdf_tools_api.errors import BadRequestError
from pdf_tools_api.schemas import PageRef

LOGGER = logging.getLogger(__name__)

_LAYOUT_ADAPTER = TypeAdapter(list[PageRef])

PageCounter = Callable[[Path], Awaitable[int]]


class PageCountCache:
    """Per-request memo so each document is counted at most once."""

    def __init__(self, count_pages: PageCounter) -> None:
        self._count_pages = count_pages
        self._counts: dict[str, int] = {}

    async def get(self, doc_id: str, path: Path) -> int:
        if doc_id not in self._counts:
            pages = await self._count_pages(path)
            LOGGER.info("Counted %s pages for doc %s", pages, doc_id)
            self._counts[doc_id] = pages
        return self._counts[doc_id]


def parse_layout(raw: str) -> list[PageRef]:
    try:
        plan = _LAYOUT_ADAPTER.validate_json(raw)
    except ValidationError as exc:
        raise BadRequestError("Invalid layout") from exc
    if not plan:
        raise BadRequestError("Layout is empty")
    return plan


async def resolve_layout(
    plan: Sequence[PageRef],
    documents: Mapping[str, Path],
    count_pages: PageCounter | PageCountCache,
) -> list[tuple[Path, int]]:
    """Validate ``plan`` against the uploaded documents.

    Returns the ``(path, page)`` pairs in output order. Unknown ids are
    rejected before any page is counted.
    """
    if not plan:
        raise BadRequestError("Layout is empty")
    if not documents:
        raise BadRequestError("Layout provided but no file_* parts found")

    for ref in plan:
        if ref.doc not in documents:
            raise BadRequestError(f"Layout references unknown doc id: {ref.doc}")

    cache = count_pages if isinstance(count_pages, PageCountCache) else PageCountCache(count_pages)
    resolved: list[tuple[Path, int]] = []
    for ref in plan:
        path = documents[ref.doc]
        max_pages = await cache.get(ref.doc, path)
        if ref.page < 1 or ref.page > max_pages:
            raise BadRequestError(
                f"Invalid page {ref.page} for doc {ref.doc} (max {max_pages})"
            )
        resolved.append((path, ref.page))
    return resolved


def concatenation_order(documents: Mapping[str, Path]) -> list[Path]:
    """Whole documents in submission order (mappings keep insertion order)."""
    return list(documents.values())
