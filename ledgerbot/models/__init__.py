from .base import Base
from .user_record import OnboardingState, UserRecord

__all__ = [
    "Base",
    "OnboardingState",
    "UserRecord",
]
