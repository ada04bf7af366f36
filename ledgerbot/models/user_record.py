from __future__ import annotations

from enum import Enum

from sqlalchemy import BigInteger, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class OnboardingState(str, Enum):
    AWAITING_URL = "awaiting-url"
    AWAITING_TOKEN = "awaiting-token"
    READY = "ready"


class UserRecord(Base):
    """Onboarding progress and ledger credentials of one Telegram user."""

    __tablename__ = "user_records"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    # Plain string so that values written by other versions are detected, not coerced.
    state: Mapped[str] = mapped_column(String(32), nullable=False)
    ledger_url: Mapped[str] = mapped_column(String(2048), default="", nullable=False)
    ledger_token: Mapped[str] = mapped_column(Text, default="", nullable=False)
