from pdf_tools_api.services.merge_pipeline import MergePipeline, MergeState, scratch_area
from pdf_tools_api.services.page_layout import (
    PageCountCache,
    concatenation_order,
    parse_layout,
    resolve_layout,
)
from pdf_tools_api.services.pdf_tools import PdfToolchain, quality_to_gs_params
from pdf_tools_api.services.process_runner import (
    ToolExitError,
    ToolOutputError,
    ToolResult,
    ToolStartError,
    ToolTimeoutError,
    run_tool,
)
from pdf_tools_api.services.upload_ingestor import (
    FormAccumulator,
    IngestedUpload,
    MergeOptions,
    UploadIngestor,
    UploadShape,
)

__all__ = [
    "FormAccumulator",
    "IngestedUpload",
    "MergeOptions",
    "MergePipeline",
    "MergeState",
    "PageCountCache",
    "PdfToolchain",
    "ToolExitError",
    "ToolOutputError",
    "ToolResult",
    "ToolStartError",
    "ToolTimeoutError",
    "UploadIngestor",
    "UploadShape",
    "concatenation_order",
    "parse_layout",
    "quality_to_gs_params",
    "resolve_layout",
    "run_tool",
]
