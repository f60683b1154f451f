from __future__ import annotations

from contextlib import asynccontextmanager
import enum
import logging
import os
from pathlib import Path
import shutil
import tempfile
from typing import AsyncIterable, AsyncIterator

from starlette.concurrency import run_in_threadpool

from pdf_tools_api.errors import BadRequestError
from pdf_tools_api.services.page_layout import (
    PageCountCache,
    concatenation_order,
    parse_layout,
    resolve_layout,
)
from pdf_tools_api.services.pdf_tools import PdfToolchain
from pdf_tools_api.services.upload_ingestor import UploadIngestor, UploadShape
from pdf_tools_api.settings import Settings

LOGGER = logging.getLogger(__name__)


class MergeState(str, enum.Enum):
    RECEIVING = "receiving"
    VALIDATING = "validating"
    ASSEMBLING = "assembling"
    RECOMPRESSING = "recompressing"
    LINEARIZING = "linearizing"
    DONE = "done"
    FAILED = "failed"


def _create_scratch_dir(root: str | None) -> Path:
    if root:
        os.makedirs(root, exist_ok=True)
    return Path(tempfile.mkdtemp(prefix="pdf-tools-", dir=root))


def _remove_scratch_dir(path: Path) -> bool:
    shutil.rmtree(path, ignore_errors=True)
    return not path.exists()


@asynccontextmanager
async def scratch_area(settings: Settings) -> AsyncIterator[Path]:
    """Private per-request working directory, removed however the block exits.

    Creation and removal run in the threadpool, off the event loop.
    """
    path = await run_in_threadpool(_create_scratch_dir, settings.scratch_root)
    try:
        yield path
    finally:
        if not await run_in_threadpool(_remove_scratch_dir, path):
            LOGGER.warning("Scratch directory %s could not be removed", path)


def _read_bytes(path: Path) -> bytes:
    return path.read_bytes()


class _StateTracker:
    def __init__(self, operation: str) -> None:
        self.operation = operation
        self.state = MergeState.RECEIVING
        LOGGER.info("%s: %s", operation, self.state.value)

    def advance(self, state: MergeState) -> None:
        LOGGER.info("%s: %s -> %s", self.operation, self.state.value, state.value)
        self.state = state


class MergePipeline:
    def __init__(self, settings: Settings, toolchain: PdfToolchain | None = None) -> None:
        self.settings = settings
        self.toolchain = toolchain or PdfToolchain(settings)
        self.ingestor = UploadIngestor(settings)

    async def count_pages(
        self, content_type: str | None, stream: AsyncIterable[bytes]
    ) -> int:
        async with scratch_area(self.settings) as scratch_dir:
            upload = await self.ingestor.ingest(
                content_type, stream, scratch_dir, UploadShape.SINGLE
            )
            path = next(iter(upload.documents.values()))
            return await self.toolchain.count_pages(path)

    async def merge(self, content_type: str | None, stream: AsyncIterable[bytes]) -> bytes:
        tracker = _StateTracker("merge")
        try:
            async with scratch_area(self.settings) as scratch_dir:
                output = await self._merge_in(scratch_dir, content_type, stream, tracker)
                # Read before the scratch directory is removed.
                data = await run_in_threadpool(_read_bytes, output)
        except BaseException:
            tracker.advance(MergeState.FAILED)
            raise
        tracker.advance(MergeState.DONE)
        return data

    async def _merge_in(
        self,
        scratch_dir: Path,
        content_type: str | None,
        stream: AsyncIterable[bytes],
        tracker: _StateTracker,
    ) -> Path:
        upload = await self.ingestor.ingest(
            content_type, stream, scratch_dir, UploadShape.MERGE
        )

        tracker.advance(MergeState.VALIDATING)
        if not upload.documents:
            raise BadRequestError("No PDF files uploaded")
        options = upload.form.resolve()
        plan = parse_layout(options.layout_json) if options.layout_json is not None else None
        keyed_documents = upload.documents if upload.keyed else {}

        if plan is not None:
            cache = PageCountCache(self.toolchain.count_pages)
            pages = await resolve_layout(plan, keyed_documents, cache)
            tracker.advance(MergeState.ASSEMBLING)
            gs_inputs = [
                await self.toolchain.assemble_pages(pages, scratch_dir / "assembled.pdf")
            ]
        else:
            gs_inputs = concatenation_order(upload.documents)

        tracker.advance(MergeState.RECOMPRESSING)
        LOGGER.info(
            "Recompressing %s input(s) at quality %s", len(gs_inputs), options.quality
        )
        output = await self.toolchain.recompress(
            gs_inputs, scratch_dir / "merged.pdf", options.quality
        )

        if options.linearize:
            tracker.advance(MergeState.LINEARIZING)
            output = await self.toolchain.linearize(output, scratch_dir / "linearized.pdf")
        return output
