from pdf_tools_api.telemetry.tracing import generate_trace_id

__all__ = ["generate_trace_id"]
