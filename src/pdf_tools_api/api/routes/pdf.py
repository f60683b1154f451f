from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import APIRouter, Depends, Request, Response

from pdf_tools_api.schemas import NPagesResponse
from pdf_tools_api.services import MergePipeline

MERGED_FILENAME = "merged.pdf"


def build_pdf_router(
    pipeline: MergePipeline,
    *,
    require_session: Callable[[Request], Awaitable[str]],
) -> APIRouter:
    router = APIRouter(
        prefix="/api", tags=["pdf"], dependencies=[Depends(require_session)]
    )

    @router.post("/npages", response_model=NPagesResponse)
    async def npages(request: Request) -> NPagesResponse:
        pages = await pipeline.count_pages(
            request.headers.get("content-type"), request.stream()
        )
        return NPagesResponse(pages=pages)

    @router.post("/merge", response_class=Response)
    async def merge(request: Request) -> Response:
        data = await pipeline.merge(request.headers.get("content-type"), request.stream())
        return Response(
            content=data,
            media_type="application/pdf",
            headers={"Content-Disposition": f'attachment; filename="{MERGED_FILENAME}"'},
        )

    return router
