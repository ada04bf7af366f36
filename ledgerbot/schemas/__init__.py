from .transaction import TransactionCandidate, TransactionType
from .user_record import UserRecordRead, UserRecordWrite
from .wit import WitEntity, WitIntent, WitMessageResponse, WitTrait

__all__ = [
    "TransactionCandidate",
    "TransactionType",
    "UserRecordRead",
    "UserRecordWrite",
    "WitEntity",
    "WitIntent",
    "WitMessageResponse",
    "WitTrait",
]
