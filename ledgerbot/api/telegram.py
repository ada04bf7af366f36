from __future__ import annotations

import logging

from fastapi import APIRouter, Request, Response, status
from fastapi.responses import JSONResponse

from ..config import WebhookMode
from ..telegram.bot import UpdateProcessingError
from .dependencies import ProcessorDep

logger = logging.getLogger(__name__)

router = APIRouter()

FAILURE_MESSAGE = "An error occurred in the bot kindly check the logs for more info."


def _failure(details: object) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": FAILURE_MESSAGE, "details": details},
    )


@router.post("/hook")
async def telegram_webhook(request: Request, processor: ProcessorDep) -> Response:
    try:
        payload = await request.json()
    except ValueError as exc:
        logger.warning("Rejected webhook call with an invalid JSON body")
        await processor.report_failure(f"Invalid update payload: {exc}")
        if processor.mode is WebhookMode.BACKGROUND:
            return Response(status_code=status.HTTP_200_OK)
        return _failure(str(exc))

    if processor.mode is WebhookMode.BACKGROUND:
        processor.submit(payload)
        return Response(status_code=status.HTTP_200_OK)

    try:
        await processor.handle(payload)
    except UpdateProcessingError as exc:
        return _failure(exc.details)
    return Response(status_code=status.HTTP_200_OK)
