from __future__ import annotations

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class TransactionType(str, Enum):
    WITHDRAWAL = "withdrawal"
    DEPOSIT = "deposit"
    TRANSFER = "transfer"


class TransactionCandidate(BaseModel):
    """A parsed transaction that has not been sent to the ledger yet."""

    type: TransactionType
    amount: Decimal = Field(gt=0)
    description: str = Field(min_length=1, max_length=1024)
    source_name: str = Field(min_length=1, max_length=255)
    destination_name: str = Field(min_length=1, max_length=255)
    date: dt.date

    @field_validator("amount")
    @classmethod
    def _finite_amount(cls, value: Decimal) -> Decimal:
        if not value.is_finite():
            raise ValueError("Amount must be a finite number")
        return value

    @field_validator("description", "source_name", "destination_name", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value

    def to_ledger_payload(self) -> dict[str, str]:
        """Shape expected by the Firefly III transaction split API."""
        return {
            "type": self.type.value,
            "description": self.description,
            "date": self.date.isoformat(),
            "amount": format(self.amount, "f"),
            "source_name": self.source_name,
            "destination_name": self.destination_name,
        }
