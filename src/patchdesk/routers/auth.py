"""Sign-up endpoint backed by the external auth provider."""

from __future__ import annotations

import logging
from urllib.parse import quote

import pydantic
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

from ..models import SignUpRequest
from ..services.auth_client import SignUpErr, SignUpOk

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

MIN_PASSWORD_LENGTH = 8
VERIFY_EMAIL_NOTICE = "Please verify your email to continue"


def _bad_request(reason: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": reason})


def display_name_for(email: str) -> str:
    return email.split("@")[0] or "User"


@router.post("/signup")
async def sign_up(request: Request) -> Response:
    try:
        body = SignUpRequest.model_validate_json(await request.body())
    except pydantic.ValidationError:
        return _bad_request("Invalid sign up details")

    if body.password != body.confirm_password:
        return _bad_request("Passwords do not match")
    if len(body.password) < MIN_PASSWORD_LENGTH:
        return _bad_request(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    result = await request.app.state.auth_client.sign_up_email(
        email=body.email,
        password=body.password,
        name=display_name_for(body.email),
    )
    if isinstance(result, SignUpOk):
        logger.info("Account created; awaiting email verification")
        return RedirectResponse(f"/auth/login?success={quote(VERIFY_EMAIL_NOTICE)}", status_code=303)
    if isinstance(result, SignUpErr):
        return _bad_request(result.reason)
    raise TypeError(f"Unexpected sign up result: {result!r}")
