from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from pdf_tools_api.errors import BadRequestError
from pdf_tools_api.schemas import PageRef
from pdf_tools_api.services.page_layout import (
    PageCountCache,
    concatenation_order,
    parse_layout,
    resolve_layout,
)

DOCUMENTS = {"a": Path("/s/a.pdf"), "b": Path("/s/b.pdf"), "c": Path("/s/c.pdf")}
PAGE_COUNTS = {Path("/s/a.pdf"): 3, Path("/s/b.pdf"): 1, Path("/s/c.pdf"): 5}


class _CountingPager:
    def __init__(self) -> None:
        self.calls: list[Path] = []

    async def __call__(self, path: Path) -> int:
        self.calls.append(path)
        return PAGE_COUNTS[path]


def _resolve(plan, documents=DOCUMENTS, pager=None):
    pager = pager or _CountingPager()
    return asyncio.run(resolve_layout(plan, documents, pager)), pager


def test_parse_layout_reads_page_refs() -> None:
    plan = parse_layout('[{"doc": "a", "page": 2}, {"doc": "b", "page": 1}]')

    assert plan == [PageRef(doc="a", page=2), PageRef(doc="b", page=1)]


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        '{"doc": "a", "page": 1}',
        '[{"doc": "a"}]',
        '[{"doc": "a", "page": "1"}]',
        '[{"doc": 1, "page": 1}]',
        '[{"doc": "a", "page": 1.5}]',
    ],
)
def test_parse_layout_rejects_malformed_plans(raw: str) -> None:
    with pytest.raises(BadRequestError, match="Invalid layout"):
        parse_layout(raw)


def test_parse_layout_rejects_empty_plan() -> None:
    with pytest.raises(BadRequestError, match="Layout is empty"):
        parse_layout("[]")


def test_resolve_layout_returns_pages_in_plan_order() -> None:
    plan = [PageRef(doc="b", page=1), PageRef(doc="a", page=3), PageRef(doc="a", page=1)]

    resolved, _ = _resolve(plan)

    assert resolved == [
        (Path("/s/b.pdf"), 1),
        (Path("/s/a.pdf"), 3),
        (Path("/s/a.pdf"), 1),
    ]


def test_resolve_layout_counts_each_referenced_document_once() -> None:
    plan = [PageRef(doc="a", page=page) for page in (1, 2, 3, 1, 2)]

    _, pager = _resolve(plan)

    assert pager.calls == [Path("/s/a.pdf")]


def test_resolve_layout_rejects_unknown_ids_before_counting() -> None:
    plan = [PageRef(doc="a", page=1), PageRef(doc="zzz", page=1)]
    pager = _CountingPager()

    with pytest.raises(BadRequestError, match="unknown doc id: zzz"):
        _resolve(plan, pager=pager)
    assert pager.calls == []


@pytest.mark.parametrize("page", [0, 2, -1])
def test_resolve_layout_rejects_out_of_range_pages(page: int) -> None:
    with pytest.raises(BadRequestError) as exc_info:
        _resolve([PageRef(doc="b", page=page)])

    assert exc_info.value.message == f"Invalid page {page} for doc b (max 1)"


def test_resolve_layout_requires_keyed_documents() -> None:
    with pytest.raises(BadRequestError, match="no file_\\* parts found"):
        _resolve([PageRef(doc="a", page=1)], documents={})


def test_page_count_cache_is_shared_across_resolutions() -> None:
    pager = _CountingPager()
    cache = PageCountCache(pager)

    async def run_twice() -> None:
        await resolve_layout([PageRef(doc="c", page=5)], DOCUMENTS, cache)
        await resolve_layout([PageRef(doc="c", page=4)], DOCUMENTS, cache)

    asyncio.run(run_twice())

    assert pager.calls == [Path("/s/c.pdf")]


def test_concatenation_order_follows_submission_order() -> None:
    documents = {"legacy_1": Path("/s/2.pdf"), "legacy_0": Path("/s/1.pdf")}

    assert concatenation_order(documents) == [Path("/s/2.pdf"), Path("/s/1.pdf")]
