"""Custom exception hierarchy for the trade intelligence engine."""


class TradeIntelError(Exception):
    """Base exception for all trade intelligence errors."""


# --- Configuration ---
class ConfigError(TradeIntelError):
    """Invalid or missing configuration."""


# --- Data ---
class DataError(TradeIntelError):
    """Trade ingestion or quality error."""


class TradeSourceError(DataError):
    """The trade source failed to deliver trade history."""

    def __init__(self, user_id: str, profile_id: str, reason: str):
        self.user_id = user_id
        self.profile_id = profile_id
        self.reason = reason
        super().__init__(
            f"Trade fetch failed for {user_id}:{profile_id}: {reason}"
        )


# --- Engine ---
class EngineError(TradeIntelError):
    """Orchestration failure."""


class ContextNotInitialized(EngineError):
    """No unified context exists for the requested user/profile."""


# --- Persistence ---
class PersistenceError(TradeIntelError):
    """Pattern or insight sink failure (best-effort, never fatal)."""
