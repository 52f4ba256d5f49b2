"""Authentication API endpoints."""

from typing import Literal, Optional, Union
from urllib.parse import urlencode
from uuid import UUID

import structlog
from fastapi import APIRouter, Body, Depends, Query, Request, Response, status
from fastapi.responses import RedirectResponse

from src.api.cookies import REFRESH_TOKEN_COOKIE, clear_auth_cookies, set_auth_cookies
from src.api.dependencies import get_current_user, verify_csrf
from src.config import Settings, get_settings
from src.models.auth import (
    AuthCodeResponse,
    AuthResult,
    ExchangeCodeRequest,
    LoginRequest,
    LogoutResponse,
    RefreshRequest,
    RegisterRequest,
    SessionResponse,
)
from src.models.user import AuthenticatedUser, OAuthProviderName
from src.services.auth_code_service import AuthCodeService
from src.services.auth_service import AuthService
from src.services.errors import AuthError, UnauthorizedError
from src.services.oauth_provider_service import get_oauth_provider
from src.services.oauth_state_service import OAuthStateService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

OAUTH_ERROR_CODES = {"account_not_found", "wrong_auth_method", "invalid_state", "oauth_failed"}
OAUTH_GENERIC_MESSAGE = "An error occurred during authentication."


def _session_response(
    result: AuthResult, response: Response, settings: Settings
) -> SessionResponse:
    """Set auth cookies and mirror the tokens in the body."""
    set_auth_cookies(
        response,
        result.tokens.access_token,
        result.tokens.refresh_token,
        settings,
    )
    return SessionResponse(
        user=result.user,
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
    )


def _refresh_token_from(request: Request, body: Optional[RefreshRequest]) -> Optional[str]:
    """Refresh token from the refreshToken cookie, else the request body."""
    token = request.cookies.get(REFRESH_TOKEN_COOKIE)
    if token:
        return token
    if body is not None and body.refresh_token:
        return body.refresh_token
    return None


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    response_model=Union[AuthCodeResponse, SessionResponse],
)
async def register(request: RegisterRequest, response: Response):
    """Create an email/password account.

    Returns a single-use auth code to trade at /auth/exchange-code. With
    code handoff disabled, sets cookies and returns the session directly.

    Raises:
        ConflictError 409: If the email is already registered
    """
    settings = get_settings()
    auth_service = AuthService()

    if not settings.auth_code_handoff:
        result = await auth_service.register(request.email, request.password, request.name)
        return _session_response(result, response, settings)

    user = await auth_service.register_user(request.email, request.password, request.name)
    code = await AuthCodeService().create_auth_code(user.id)
    return AuthCodeResponse(code=code, user=user)


@router.post("/login", response_model=Union[AuthCodeResponse, SessionResponse])
async def login(request: LoginRequest, response: Response):
    """Sign in with email and password.

    Raises:
        UnauthorizedError 401: Unknown email, OAuth-only account or wrong password
    """
    settings = get_settings()
    auth_service = AuthService()

    if not settings.auth_code_handoff:
        result = await auth_service.login(request.email, request.password)
        return _session_response(result, response, settings)

    user = await auth_service.authenticate(request.email, request.password)
    code = await AuthCodeService().create_auth_code(user.id)
    return AuthCodeResponse(code=code, user=user)


@router.post("/exchange-code")
async def exchange_code(request: ExchangeCodeRequest, response: Response) -> SessionResponse:
    """Trade a single-use auth code for tokens.

    This is where cookies are written for register, login and OAuth flows.

    Raises:
        UnauthorizedError 401: If the code is unknown, expired or already used
    """
    user_id = await AuthCodeService().exchange_auth_code(request.code)
    if user_id is None:
        raise UnauthorizedError("Invalid or expired authorization code", code="invalid_code")

    result = await AuthService().issue_for_user_id(user_id)
    return _session_response(result, response, get_settings())


@router.post("/refresh")
async def refresh(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = Body(default=None),
) -> SessionResponse:
    """Rotate the refresh token and issue a new pair.

    Reads the refreshToken cookie, falling back to `refreshToken` in the body.

    Raises:
        UnauthorizedError 401: Missing, invalid, expired or already-used token
    """
    token = _refresh_token_from(request, body)
    if not token:
        raise UnauthorizedError("Refresh token is required", code="missing_token")

    result = await AuthService().refresh(token)
    return _session_response(result, response, get_settings())


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    scope: Literal["all", "current"] = Query(default="all"),
    body: Optional[RefreshRequest] = Body(default=None),
    current_user: AuthenticatedUser = Depends(verify_csrf),
) -> LogoutResponse:
    """Revoke refresh tokens and clear auth cookies. Requires a CSRF token.

    `scope=all` (default) ends every session of the user; `scope=current`
    ends only the session named by the caller's refresh token.
    """
    auth_service = AuthService()
    token_id: Optional[UUID] = None

    if scope == "current":
        token_id = _own_refresh_record_id(auth_service, request, body, current_user)
        if token_id is None:
            clear_auth_cookies(response, get_settings())
            return LogoutResponse(sessions_revoked=0)

    revoked = await auth_service.logout(current_user.id, token_id)
    clear_auth_cookies(response, get_settings())
    return LogoutResponse(sessions_revoked=revoked)


def _own_refresh_record_id(
    auth_service: AuthService,
    request: Request,
    body: Optional[RefreshRequest],
    current_user: AuthenticatedUser,
) -> Optional[UUID]:
    token = _refresh_token_from(request, body)
    if not token:
        return None
    try:
        payload = auth_service.token_service.decode_refresh_token(token)
        if payload["sub"] != str(current_user.id):
            return None
        return UUID(str(payload["tokenId"]))
    except (UnauthorizedError, ValueError):
        return None


@router.get("/me")
async def get_me(
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
    """Get the authenticated principal."""
    return current_user


# ---------------------------------------------------------------------------
# OAuth (Google, Facebook)
# ---------------------------------------------------------------------------

def _oauth_start(provider_name: OAuthProviderName, mode: str) -> RedirectResponse:
    if mode not in ("signin", "signup"):
        mode = "signin"
    provider = get_oauth_provider(provider_name)
    state = OAuthStateService().generate_state(mode)
    logger.info("oauth_redirect", provider=provider_name, mode=mode)
    return RedirectResponse(provider.authorization_url(state), status_code=status.HTTP_302_FOUND)


def _oauth_error_redirect(
    settings: Settings, mode: str, error_code: str, message: str
) -> RedirectResponse:
    page = "/sign-up" if mode == "signup" else "/sign-in"
    query = urlencode({"error": error_code, "message": message})
    return RedirectResponse(
        f"{settings.frontend_url.rstrip('/')}{page}?{query}",
        status_code=status.HTTP_302_FOUND,
    )


async def _oauth_callback(
    provider_name: OAuthProviderName,
    code: Optional[str],
    state: Optional[str],
    error: Optional[str],
) -> RedirectResponse:
    """Verify state, resolve the account and redirect with an auth code.

    Every failure becomes a redirect to the sign-in (or sign-up) page with
    `error` and `message` query parameters.
    """
    settings = get_settings()

    payload = OAuthStateService().verify_state(state)
    if payload is None:
        logger.warning("oauth_callback_invalid_state", provider=provider_name)
        return _oauth_error_redirect(
            settings,
            "signin",
            "invalid_state",
            "Your sign-in request expired or was invalid. Please try again.",
        )
    mode = payload.mode

    if error or not code:
        logger.info("oauth_callback_denied", provider=provider_name, provider_error=error)
        return _oauth_error_redirect(
            settings, mode, "oauth_failed", "OAuth authentication failed. Please try again."
        )

    try:
        provider = get_oauth_provider(provider_name, settings)
        profile = await provider.fetch_profile(code)
        user = await AuthService().resolve_oauth_user(profile, mode)
        auth_code = await AuthCodeService().create_auth_code(user.id)
    except AuthError as e:
        logger.warning("oauth_callback_failed", provider=provider_name, reason=e.code)
        error_code = e.code if e.code in OAUTH_ERROR_CODES else "oauth_failed"
        message = e.message if e.expose else OAUTH_GENERIC_MESSAGE
        return _oauth_error_redirect(settings, mode, error_code, message)
    except Exception:
        logger.exception("oauth_callback_error", provider=provider_name)
        return _oauth_error_redirect(settings, mode, "oauth_failed", OAUTH_GENERIC_MESSAGE)

    logger.info("oauth_callback_succeeded", provider=provider_name, user_id=str(user.id))
    query = urlencode({"code": auth_code})
    return RedirectResponse(
        f"{settings.frontend_url.rstrip('/')}/auth/callback?{query}",
        status_code=status.HTTP_302_FOUND,
    )


@router.get("/google")
async def google_auth(mode: str = Query(default="signin")) -> RedirectResponse:
    """Redirect to Google with a signed state carrying signin/signup mode."""
    return _oauth_start("google", mode)


@router.get("/google/callback")
async def google_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
) -> RedirectResponse:
    """Google redirect target."""
    return await _oauth_callback("google", code, state, error)


@router.get("/facebook")
async def facebook_auth(mode: str = Query(default="signin")) -> RedirectResponse:
    """Redirect to Facebook with a signed state carrying signin/signup mode."""
    return _oauth_start("facebook", mode)


@router.get("/facebook/callback")
async def facebook_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
) -> RedirectResponse:
    """Facebook redirect target."""
    return await _oauth_callback("facebook", code, state, error)
