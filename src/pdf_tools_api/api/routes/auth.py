from __future__ import annotations

import logging
import secrets
from typing import Awaitable, Callable, Mapping

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from pdf_tools_api.errors import AuthError
from pdf_tools_api.pages import render_app_page, render_login_page
from pdf_tools_api.session import SESSION_COOKIE_NAME, SessionSigner
from pdf_tools_api.settings import Settings

LOGGER = logging.getLogger(__name__)
LOGIN_FAILED_MESSAGE = "Invalid username or password."


def _extract_forwarded_proto(value: str | None) -> str | None:
    if not value:
        return None
    first_value = value.split(",", 1)[0].strip().lower()
    return first_value or None


def _forwarded_proto_is_https(headers: Mapping[str, str]) -> bool:
    if _extract_forwarded_proto(headers.get("x-forwarded-proto")) == "https":
        return True
    forwarded = headers.get("forwarded")
    return bool(forwarded) and "proto=https" in forwarded.lower()


def cookie_should_be_secure(settings: Settings, headers: Mapping[str, str]) -> bool:
    if settings.cookie_secure == "always":
        return True
    if settings.cookie_secure == "never":
        return False
    return settings.trust_proxy_headers and _forwarded_proto_is_https(headers)


def _credentials_match(settings: Settings, username: str, password: str) -> bool:
    # Both comparisons always run so timing does not reveal which one failed.
    username_ok = secrets.compare_digest(
        username.encode("utf-8"), settings.username.encode("utf-8")
    )
    password_ok = secrets.compare_digest(
        password.encode("utf-8"), settings.password.encode("utf-8")
    )
    return username_ok and password_ok


def _session_username(request: Request, signer: SessionSigner) -> str | None:
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        return None
    return signer.verify(token)


def build_session_dependency(signer: SessionSigner) -> Callable[[Request], Awaitable[str]]:
    async def require_session(request: Request) -> str:
        username = _session_username(request, signer)
        if username is None:
            raise AuthError()
        request.state.username = username
        return username

    return require_session


def build_auth_router(*, settings: Settings, signer: SessionSigner) -> APIRouter:
    router = APIRouter(tags=["auth"])

    @router.get("/", response_class=HTMLResponse)
    async def index(request: Request) -> HTMLResponse:
        if _session_username(request, signer) is not None:
            return HTMLResponse(render_app_page())
        return HTMLResponse(render_login_page())

    @router.post("/login")
    async def login(
        request: Request,
        username: str = Form(""),
        password: str = Form(""),
    ) -> Response:
        if not _credentials_match(settings, username, password):
            LOGGER.warning("Rejected login attempt")
            return HTMLResponse(render_login_page(LOGIN_FAILED_MESSAGE), status_code=401)

        response = RedirectResponse("/", status_code=303)
        response.set_cookie(
            SESSION_COOKIE_NAME,
            signer.issue(username),
            max_age=signer.ttl_seconds,
            path="/",
            secure=cookie_should_be_secure(settings, request.headers),
            httponly=True,
            samesite="lax",
        )
        LOGGER.info("Issued session for %s", username)
        return response

    @router.post("/logout")
    async def logout(request: Request) -> Response:
        response = RedirectResponse("/", status_code=303)
        response.delete_cookie(
            SESSION_COOKIE_NAME,
            path="/",
            secure=cookie_should_be_secure(settings, request.headers),
            httponly=True,
            samesite="lax",
        )
        return response

    return router
