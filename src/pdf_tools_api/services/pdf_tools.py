from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Awaitable, Callable, Sequence

from pdf_tools_api.services.process_runner import ToolOutputError, ToolResult, run_tool
from pdf_tools_api.settings import Settings

LOGGER = logging.getLogger(__name__)

MIN_QUALITY = 10
MAX_QUALITY = 100
DEFAULT_QUALITY = 80

ToolRunner = Callable[..., Awaitable[ToolResult]]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def quality_to_gs_params(quality: int) -> tuple[int, int]:
    """Map the 10-100 quality slider to (image DPI, JPEG quality) for Ghostscript."""
    clamped = min(max(quality, MIN_QUALITY), MAX_QUALITY)
    t = (clamped - MIN_QUALITY) / (MAX_QUALITY - MIN_QUALITY)
    dpi = _round_half_up(72 + t * (300 - 72))
    jpeg_quality = _round_half_up(20 + t * (95 - 20))
    return dpi, jpeg_quality


def ghostscript_args(
    input_paths: Sequence[Path], output_path: Path, quality: int
) -> list[str]:
    dpi, jpeg_quality = quality_to_gs_params(quality)
    return [
        "-q",
        "-dNOPAUSE",
        "-dBATCH",
        "-dSAFER",
        "-sDEVICE=pdfwrite",
        "-dCompatibilityLevel=1.4",
        "-dDetectDuplicateImages=true",
        "-dCompressFonts=true",
        "-dSubsetFonts=true",
        "-dDownsampleColorImages=true",
        "-dDownsampleGrayImages=true",
        "-dDownsampleMonoImages=true",
        "-dColorImageDownsampleType=/Bicubic",
        "-dGrayImageDownsampleType=/Bicubic",
        f"-dColorImageResolution={dpi}",
        f"-dGrayImageResolution={dpi}",
        "-dMonoImageResolution=600",
        f"-dJPEGQ={jpeg_quality}",
        f"-sOutputFile={output_path}",
        *(str(path) for path in input_paths),
    ]


class PdfToolchain:
    """The qpdf and Ghostscript invocations the merge pipeline is built from."""

    def __init__(self, settings: Settings, *, runner: ToolRunner = run_tool) -> None:
        self._qpdf = settings.qpdf_binary
        self._gs = settings.ghostscript_binary
        self._timeout_seconds = settings.tool_timeout_seconds
        self._runner = runner

    async def _run_qpdf(self, args: list[str]) -> ToolResult:
        return await self._runner(
            self._qpdf, args, timeout_seconds=self._timeout_seconds, tool_name="qpdf"
        )

    async def count_pages(self, path: Path) -> int:
        result = await self._run_qpdf(["--show-npages", str(path)])
        raw = result.stdout_text.strip()
        if not (raw.isascii() and raw.isdigit()):
            raise ToolOutputError("qpdf", f"Failed to parse qpdf output: {raw[:80]!r}")
        return int(raw)

    async def assemble_pages(
        self, pages: Sequence[tuple[Path, int]], output_path: Path
    ) -> Path:
        args = ["--empty", "--pages"]
        for path, page in pages:
            args.extend([str(path), str(page)])
        args.extend(["--", str(output_path)])
        await self._run_qpdf(args)
        return output_path

    async def linearize(self, input_path: Path, output_path: Path) -> Path:
        await self._run_qpdf(["--linearize", str(input_path), str(output_path)])
        return output_path

    async def recompress(
        self, input_paths: Sequence[Path], output_path: Path, quality: int
    ) -> Path:
        await self._runner(
            self._gs,
            ghostscript_args(input_paths, output_path, quality),
            timeout_seconds=self._timeout_seconds,
            tool_name="ghostscript",
        )
        return output_path
