from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, model_validator

from ..models.user_record import OnboardingState


class UserRecordWrite(BaseModel):
    """Full set of mutable fields stored for a user."""

    state: OnboardingState
    ledger_url: str = ""
    ledger_token: str = ""

    @model_validator(mode="after")
    def _ready_requires_credentials(self) -> "UserRecordWrite":
        if self.state is OnboardingState.READY and not (self.ledger_url and self.ledger_token):
            raise ValueError("A ready record needs both a ledger URL and an access token")
        return self


class UserRecordRead(BaseModel):
    """Request-scoped view of a stored user record."""

    model_config = ConfigDict(from_attributes=True)

    user_id: int
    state: str
    ledger_url: str
    ledger_token: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.ledger_url and self.ledger_token)
