from .ledger import LedgerApiError, LedgerClient
from .nlu import NluServiceError, WitClient
from .user_records import StoreError, UserRecordStore

__all__ = [
    "LedgerApiError",
    "LedgerClient",
    "NluServiceError",
    "WitClient",
    "StoreError",
    "UserRecordStore",
]
