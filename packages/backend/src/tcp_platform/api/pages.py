"""Page routes: sign-up, sign-in, sign-out, dashboard.

These are the only routes that start or end a browser session. POST
bodies are JSON; success sets the session cookie and answers with a
303 redirect so the browser follows with a GET.

- GET/POST /sign-up
- GET/POST /sign-in
- POST /sign-out
- GET /dashboard
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from tcp_platform.auth.context import ContextResolver
from tcp_platform.auth.dependencies import get_user_context_optional, get_user_session
from tcp_platform.auth.session import clear_session, write_user_session
from tcp_platform.db.engine import get_db
from tcp_platform.schemas.auth import SignInForm, SignUpForm
from tcp_platform.schemas.session import UserSessionData
from tcp_platform.services.auth_service import AuthService

logger = structlog.get_logger()

router = APIRouter()

DEFAULT_REDIRECT = "/dashboard"


def safe_redirect(target: Optional[str]) -> str:
    """Only same-site relative paths; anything else goes to the dashboard."""
    if not target or not target.startswith("/"):
        return DEFAULT_REDIRECT
    if target.startswith("//") or target.startswith("/\\"):
        return DEFAULT_REDIRECT
    return target


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def _svc(db: AsyncSession = Depends(get_db)) -> AuthService:
    return AuthService(db)


# ─── Sign-up / sign-in ──────────────────────────────────

@router.get("/sign-up")
async def sign_up_page(redirect: Optional[str] = None, invite_token: Optional[str] = None):
    return {
        "page": "sign-up",
        "redirect": safe_redirect(redirect),
        "invite_token": invite_token,
    }


@router.post("/sign-up")
async def sign_up(body: SignUpForm, request: Request, svc: AuthService = Depends(_svc)):
    """Create an account and start a session."""
    context = await svc.sign_up(
        email=body.email,
        password=body.password,
        company_name=body.company_name,
        invite_token=body.invite_token,
        ip_address=client_ip(request),
    )
    response = RedirectResponse(safe_redirect(body.redirect), status_code=303)
    write_user_session(response, context.to_session())
    return response


@router.get("/sign-in")
async def sign_in_page(redirect: Optional[str] = None):
    return {"page": "sign-in", "redirect": safe_redirect(redirect)}


@router.post("/sign-in")
async def sign_in(body: SignInForm, request: Request, svc: AuthService = Depends(_svc)):
    context = await svc.sign_in(
        email=body.email,
        password=body.password,
        company_slug=body.company_slug,
        project_slug=body.project_slug,
        ip_address=client_ip(request),
    )
    response = RedirectResponse(safe_redirect(body.redirect), status_code=303)
    write_user_session(response, context.to_session())
    return response


@router.post("/sign-out")
async def sign_out(
    session: Optional[UserSessionData] = Depends(get_user_session),
    svc: AuthService = Depends(_svc),
):
    """Clear the cookie. Works with or without a valid session."""
    if session is not None:
        await svc.record_sign_out(
            session.user.id, session.company.id if session.company else None
        )
        logger.info("auth.sign_out", user_id=session.user.id)
    response = RedirectResponse("/sign-in", status_code=303)
    clear_session(response)
    return response


# ─── Dashboard ──────────────────────────────────────────

@router.get("/dashboard")
async def dashboard(
    context=Depends(get_user_context_optional),
    db: AsyncSession = Depends(get_db),
):
    """Resolved context plus every membership, for the landing page."""
    if context is None:
        response = RedirectResponse("/sign-in", status_code=303)
        clear_session(response)
        return response

    memberships = await ContextResolver(db).memberships(context.user.id)
    return {
        "user": {"id": context.user.id, "email": context.user.email, "name": context.user.name},
        "company": context.company.claim().model_dump() if context.company else None,
        "project": context.project.claim().model_dump() if context.project else None,
        **memberships,
    }
