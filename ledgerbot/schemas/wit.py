from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

AMOUNT_OF_MONEY_ENTITY = "wit$amount_of_money:amount_of_money"
ORIGIN_ACCOUNT_ENTITY = "account:origin"
DESTINATION_ACCOUNT_ENTITY = "account:destination"
DEED_ENTITY = "deed:deed"
FLOW_TRAIT = "flow"


class WitIntent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    confidence: Optional[float] = None


class WitEntity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: str = ""
    value: Any = None
    unit: Optional[str] = None
    body: Optional[str] = None


class WitTrait(BaseModel):
    model_config = ConfigDict(extra="ignore")

    value: Any = None
    confidence: Optional[float] = None


class WitMessageResponse(BaseModel):
    """Response of the Wit.ai ``/message`` endpoint."""

    model_config = ConfigDict(extra="ignore")

    text: str = ""
    intents: list[WitIntent] = Field(default_factory=list)
    entities: dict[str, list[WitEntity]] = Field(default_factory=dict)
    traits: dict[str, list[WitTrait]] = Field(default_factory=dict)

    def first_entity(self, key: str) -> Optional[WitEntity]:
        """Only the first occurrence of an entity is used; later ones are ignored."""
        values = self.entities.get(key) or []
        return values[0] if values else None

    def first_trait(self, key: str) -> Optional[WitTrait]:
        values = self.traits.get(key) or []
        return values[0] if values else None
