from fastapi import Request, Response

from ..config import Settings


def set_refresh_cookie(response: Response, refresh_secret: str, settings: Settings) -> None:
    """HttpOnly, scoped to the auth routes, Secure in production"""
    cookie = settings.cookies
    response.set_cookie(
        key=cookie.name,
        value=refresh_secret,
        httponly=True,
        secure=cookie.secure,
        samesite=cookie.samesite,
        max_age=cookie.max_age,
        path=cookie.path
    )


def clear_refresh_cookie(response: Response, settings: Settings) -> None:
    cookie = settings.cookies
    response.delete_cookie(
        key=cookie.name,
        path=cookie.path,
        secure=cookie.secure,
        httponly=True,
        samesite=cookie.samesite
    )


def read_refresh_cookie(request: Request, settings: Settings) -> str | None:
    value = request.cookies.get(settings.cookies.name)
    if not value:
        return None
    return value.strip() or None
