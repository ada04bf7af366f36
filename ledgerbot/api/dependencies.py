from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from ..telegram.bot import UpdateProcessor


def get_processor(request: Request) -> UpdateProcessor:
    processor = getattr(request.app.state, "processor", None)
    if processor is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Telegram bot is not initialised.",
        )
    return processor


ProcessorDep = Annotated[UpdateProcessor, Depends(get_processor)]
