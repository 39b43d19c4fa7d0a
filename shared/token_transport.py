"""
Moving tokens on and off HTTP requests.

Two cookies, both httpOnly and SameSite=Strict:
- ``auth_token``: identity token set at login
- ``user_token``: device-bound session token set at activation / resume

An ``Authorization: Bearer <token>`` header takes precedence over either
cookie for API clients.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request, Response

from config import JWTSettings

SESSION_COOKIE = "user_token"
IDENTITY_COOKIE = "auth_token"


def bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        return token or None
    return None


def get_session_token(request: Request) -> Optional[str]:
    return bearer_token(request) or request.cookies.get(SESSION_COOKIE)


def get_identity_token(request: Request) -> Optional[str]:
    return bearer_token(request) or request.cookies.get(IDENTITY_COOKIE)


def _set_cookie(response: Response, name: str, token: str, max_age: int, secure: bool) -> None:
    response.set_cookie(
        name,
        value=token,
        httponly=True,
        secure=secure,
        samesite="strict",
        path="/",
        max_age=max_age,
    )


def _clear_cookie(response: Response, name: str, secure: bool) -> None:
    response.set_cookie(
        name,
        value="",
        expires=0,
        httponly=True,
        secure=secure,
        samesite="strict",
        path="/",
    )


def set_session_cookie(response: Response, token: str, settings: JWTSettings) -> Response:
    _set_cookie(
        response, SESSION_COOKIE, token, settings.session_token_ttl_seconds, settings.cookie_secure
    )
    return response


def set_identity_cookie(response: Response, token: str, settings: JWTSettings) -> Response:
    _set_cookie(
        response,
        IDENTITY_COOKIE,
        token,
        settings.identity_token_ttl_seconds,
        settings.cookie_secure,
    )
    return response


def clear_session_cookie(response: Response, settings: JWTSettings) -> Response:
    _clear_cookie(response, SESSION_COOKIE, settings.cookie_secure)
    return response


def clear_auth_cookies(response: Response, settings: JWTSettings) -> Response:
    _clear_cookie(response, IDENTITY_COOKIE, settings.cookie_secure)
    _clear_cookie(response, SESSION_COOKIE, settings.cookie_secure)
    return response
