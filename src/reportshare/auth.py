import base64
import binascii
import secrets

from fastapi import HTTPException, Request, Response

from .config import Settings

SESSION_COOKIE = "admin_session"
SESSION_VALUE = "authenticated"
BASIC_CHALLENGE = 'Basic realm="Admin Area"'


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _as_bytes(value: str) -> bytes:
    # JSON bodies may carry lone surrogates, which plain utf-8 refuses
    return value.encode("utf-8", "surrogatepass")


def check_credentials(settings: Settings, username: str, password: str) -> bool:
    user_ok = secrets.compare_digest(_as_bytes(username), _as_bytes(settings.admin_username))
    pass_ok = secrets.compare_digest(_as_bytes(password), _as_bytes(settings.admin_password))
    return user_ok and pass_ok


def _basic_credentials(request: Request) -> tuple[str, str] | None:
    header = request.headers.get("authorization", "")
    if not header.startswith("Basic "):
        return None
    try:
        decoded = base64.b64decode(header.split(" ", 1)[1], validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    username, sep, password = decoded.partition(":")
    if not sep:
        return None
    return username, password


def is_authenticated(request: Request) -> bool:
    if request.cookies.get(SESSION_COOKIE) == SESSION_VALUE:
        return True
    creds = _basic_credentials(request)
    return creds is not None and check_credentials(get_settings(request), *creds)


def require_admin(request: Request) -> None:
    """Dependency for protected API routes."""
    if not is_authenticated(request):
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": BASIC_CHALLENGE},
        )


def set_session_cookie(response: Response, settings: Settings) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        SESSION_VALUE,
        max_age=settings.session_max_age,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        SESSION_COOKIE,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )
