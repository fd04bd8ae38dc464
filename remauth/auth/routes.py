"""
Authentication routes for the AD Auth redirect flow and session queries.

GET /auth/adauth starts a login: any existing session is destroyed, a
CSRF-Auth token is issued and the browser is sent to the identity provider
through an auto-submitting form. The provider POSTs a signed token back to
POST /auth/adauth, which verifies it, binds it to the CSRF-Auth cookie and
stores the user in a fresh session.
"""

import base64
import html
import json
import logging
import secrets
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Form, Request, Response, status
from fastapi.responses import HTMLResponse, RedirectResponse

from remauth.auth.csrf import CSRFTokenStore
from remauth.auth.errors import (
    AuthError,
    ConfigMissing,
    CSRFRejected,
    UpstreamUnavailable,
    VerificationFailed,
)
from remauth.auth.session import (
    Session,
    SessionStore,
    commit_user,
    get_current_user,
    get_session,
    get_session_store,
    materialize_user,
)
from remauth.auth.utils import PublicKeyCache, verify_assertion
from remauth.config import Settings
from remauth.models import User

logger = logging.getLogger(__name__)

CSRF_COOKIE_NAME = "__HOST-CSRF_AUTH_TOKEN"

ERROR_COOKIE_MAX_AGE = 60


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(
    prefix="/auth",
    tags=["authentication"],
)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


# =============================================================================
# Login Entry Point
# =============================================================================

@auth_router.get("/adauth", response_class=HTMLResponse)
async def get_adauth(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    session: Session = Depends(get_session),
    sessions: SessionStore = Depends(get_session_store),
):
    """
    Start the AD Auth flow.

    Destroys any existing session, issues a CSRF-Auth token and returns a page
    that immediately POSTs ``authTarget``, ``requestID`` and ``groupPrefix`` to
    the identity provider.
    """
    redirect_url = settings.REM_AUTH_ADAUTH_URL
    if not redirect_url:
        raise ConfigMissing("AD Auth URL is not set")

    await sessions.destroy(session)

    ttl = settings.REM_AUTH_CSRF_TOKEN_TTL
    csrf_token = await CSRFTokenStore(request.app.state.kv_store).issue(ttl)

    response = HTMLResponse(
        content=make_redirect_post_form_html(
            display_text="Redirecting...",
            values={
                "authTarget": settings.REM_AUTH_ADAUTH_TARGETNAME,
                "requestID": csrf_token,
                "groupPrefix": settings.REM_AUTH_ADAUTH_GROUPPREFIX,
            },
            redirect_url=redirect_url,
        )
    )

    # SameSite=None: the cookie has to ride along on the provider's cross-site POST
    response.set_cookie(
        CSRF_COOKIE_NAME,
        csrf_token,
        max_age=ttl,
        path="/",
        secure=True,
        httponly=True,
        samesite="none",
    )
    return response


# =============================================================================
# Identity Provider Callback
# =============================================================================

@auth_router.post("/adauth")
async def post_adauth(
    request: Request,
    token: Optional[str] = Form(None),
    result: Optional[str] = Form(None),
    settings: Settings = Depends(get_app_settings),
    session: Session = Depends(get_session),
):
    """
    Handle the identity provider's POST-back.

    A POST without a token redirects to the application root and leaves the
    session alone. Otherwise the token must verify against the provider's
    public key, and its ``aud`` claim must equal a live CSRF-Auth token that
    also arrived as the cookie. Failures go to the error page.
    """
    app_root = settings.REM_AUTH_APP_ROOT_URL

    if not token:
        logger.info("AD Auth callback without token", extra={"result": result})
        return RedirectResponse(url=app_root, status_code=status.HTTP_303_SEE_OTHER)

    store = request.app.state.kv_store
    key_cache = PublicKeyCache(
        store,
        settings.REM_AUTH_ADAUTH_PUBLICKEY_URL,
        ttl_seconds=settings.REM_AUTH_ADAUTH_PUBLICKEY_TTL,
        client=request.app.state.http_client,
    )

    try:
        public_key = await key_cache.get_public_key()
    except UpstreamUnavailable as e:
        return redirect_to_error_page(settings, e)

    try:
        assertion = verify_assertion(token, public_key)
    except VerificationFailed as e:
        logger.warning(f"AD Auth token rejected: {e.code}: {e.detail}")
        return redirect_to_error_page(settings, e)

    csrf_token = request.cookies.get(CSRF_COOKIE_NAME)
    if (
        not csrf_token
        or not secrets.compare_digest(csrf_token.encode("utf-8"), assertion.request_id.encode("utf-8"))
        or not await CSRFTokenStore(store).validate_and_consume(csrf_token)
    ):
        logger.warning(
            "CSRF-Auth check failed",
            extra={"cookie_present": bool(csrf_token), "user_name": assertion.user_name},
        )
        return redirect_to_error_page(settings, CSRFRejected())

    user = materialize_user(assertion)
    commit_user(session, user)
    logger.info("User signed in", extra={"user_name": user.name, "groups": len(user.groups)})

    response = RedirectResponse(url=app_root, status_code=status.HTTP_303_SEE_OTHER)
    response.delete_cookie(
        CSRF_COOKIE_NAME,
        path="/",
        secure=True,
        httponly=True,
        samesite="none",
    )
    return response


# =============================================================================
# Session Queries
# =============================================================================

@auth_router.get("/userinfo", response_model=User)
async def get_userinfo(user: User = Depends(get_current_user)) -> User:
    return user


@auth_router.post("/logout")
async def post_logout(
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    sessions: SessionStore = Depends(get_session_store),
) -> Response:
    await sessions.destroy(session)
    logger.info("User signed out", extra={"user_name": user.name})
    return Response(status_code=status.HTTP_200_OK)


# =============================================================================
# HTML Response Templates
# =============================================================================

def make_redirect_post_form_html(display_text: str, values: Dict[str, str], redirect_url: str) -> str:
    """Page that POSTs ``values`` as hidden fields to ``redirect_url`` on load."""
    inputs = "\n".join(
        f"            <input type='hidden' name='{html.escape(key)}' value='{html.escape(value)}'>"
        for key, value in values.items()
    )
    return f"""<html>
    <body onload='document.forms["form"].submit()'>
        {html.escape(display_text)}
        <form name='form' action='{html.escape(redirect_url)}' method='POST'>
{inputs}
        </form>
    </body>
</html>
"""


def encode_error_cookie(status_code: int, description: str) -> str:
    payload = json.dumps({"status": status_code, "description": description})
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii").rstrip("=")


def redirect_to_error_page(settings: Settings, error: AuthError) -> HTMLResponse:
    """
    Send the browser to the error page with the error carried in a cookie.

    Only the error's public message is exposed.
    """
    body = f"""<html>
    <head>
        <meta http-equiv="refresh" content="0; url={html.escape(settings.REM_AUTH_ERROR_PAGE_URL)}">
    </head>
    <body>
        Redirecting...
    </body>
</html>
"""
    response = HTMLResponse(content=body)
    response.set_cookie(
        settings.REM_AUTH_ERROR_COOKIE_NAME,
        encode_error_cookie(error.status_code, error.message),
        max_age=ERROR_COOKIE_MAX_AGE,
        path="/",
        secure=True,
        httponly=False,
        samesite="lax",
    )
    return response
