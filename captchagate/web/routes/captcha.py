"""Challenge routes: issue, display, submit, list registered users."""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse, Response
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from captchagate.gateway import VerificationGateway
from captchagate.web.dependencies import get_gateway

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["captcha"])

Gateway = Annotated[VerificationGateway, Depends(get_gateway)]


class SubmitRequest(BaseModel):
    captcha_qid: str | int
    captcha_ans: str
    username: str | None = None


@router.get("/new-qid", response_class=PlainTextResponse)
async def new_qid(gateway: Gateway) -> str:
    """Issue a challenge and return its identifier as plain text."""
    return await run_in_threadpool(gateway.create_challenge)


@router.get("/captcha-img/{qid}")
async def captcha_image(qid: str, gateway: Gateway) -> Response:
    """Render the challenge image. Each challenge can be shown only once."""
    png = await run_in_threadpool(gateway.fetch_display, qid)
    return Response(
        content=png,
        media_type="image/png",
        headers={"Cache-Control": "no-store"},
    )


@router.post("/submit", status_code=201, response_class=PlainTextResponse)
async def submit(body: SubmitRequest, gateway: Gateway) -> str:
    """Verify an answer; on success the username joins the registry."""
    identity = await run_in_threadpool(
        gateway.submit_answer, body.captcha_qid, body.captcha_ans, body.username
    )
    logger.info("submission_accepted", registered=identity is not None)
    return "created"


@router.get("/users", response_class=PlainTextResponse)
async def users(gateway: Gateway) -> str:
    """Newline-separated list of registered users."""
    return gateway.list_identities()
