from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class User(BaseModel):
    """An account known to the limits service (keyed by the auth provider's user id)."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    created_at: datetime
    display_name: str
    status: str = "active"

    @staticmethod
    def default_display_name(user_id: str, display_name: Optional[str] = None) -> str:
        """Trimmed display name, or "user-" plus the first 8 id characters."""
        if display_name and display_name.strip():
            return display_name.strip()
        return f"user-{user_id[:8]}"
