from fastapi import APIRouter

from .. import __version__

router = APIRouter()

HEALTH_MESSAGE = "Ledger bot is up and listening for Telegram updates."


@router.get("/")
async def healthcheck() -> dict[str, object]:
    return {"success": True, "message": HEALTH_MESSAGE, "version": __version__}
