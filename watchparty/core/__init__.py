from watchparty.core.config import Settings, settings
from watchparty.core.errors import StoreUnavailableError, ValidationError, WatchPartyError

__all__ = [
    "Settings",
    "settings",
    "StoreUnavailableError",
    "ValidationError",
    "WatchPartyError",
]
