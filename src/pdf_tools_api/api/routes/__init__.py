from pdf_tools_api.api.routes.auth import build_auth_router, build_session_dependency
from pdf_tools_api.api.routes.pdf import build_pdf_router

__all__ = [
    "build_auth_router",
    "build_pdf_router",
    "build_session_dependency",
]
