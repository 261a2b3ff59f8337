"""
tagmentia/models/plan.py

Plan model and the Ceiling value used for every quota.

Plans represent capability tiers (Free, Premium, Gold). Ceilings normalize
the two unlimited conventions found in the plans table (-1 for the max_*
columns, NULL for storage_quota_mb and max_screenshots_per_user) into one
explicit value so callers never compare against a sentinel.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class Ceiling(BaseModel):
    """
    A numeric quota: either unlimited or a fixed maximum.

    Build with Ceiling.unlimited(), Ceiling.limited(n) or, at the data
    boundary, Ceiling.from_raw(value).
    """
    model_config = ConfigDict(frozen=True)

    maximum: Optional[int] = None

    @classmethod
    def unlimited(cls) -> "Ceiling":
        return cls(maximum=None)

    @classmethod
    def limited(cls, maximum: int) -> "Ceiling":
        if maximum < 0:
            raise ValueError(f"limited ceiling must be >= 0, got {maximum}")
        return cls(maximum=maximum)

    @classmethod
    def from_raw(cls, raw: Optional[int]) -> "Ceiling":
        """Map a stored column value (-1 / NULL = unlimited) to a Ceiling."""
        if raw is None or int(raw) < 0:
            return cls.unlimited()
        return cls.limited(int(raw))

    @property
    def is_unlimited(self) -> bool:
        return self.maximum is None

    @property
    def raw(self) -> int:
        """Legacy integer form used in API payloads (-1 = unlimited)."""
        return -1 if self.maximum is None else self.maximum

    def allows(self, usage: int, requested: int = 1) -> bool:
        if self.maximum is None:
            return True
        return usage + requested <= self.maximum

    def remaining(self, usage: int) -> Optional[int]:
        if self.maximum is None:
            return None
        return max(0, self.maximum - usage)

    def __str__(self) -> str:
        return "unlimited" if self.maximum is None else str(self.maximum)


class Plan(BaseModel):
    """
    Plan represents a capability tier.

    Examples:
    - free (default)
    - premium
    - gold

    Ceilings are already normalized; storage is expressed in megabytes as
    stored and converted to bytes by the storage accessor.
    """
    model_config = ConfigDict(frozen=True)

    plan_id: str
    name: str
    max_categories: Ceiling
    max_videos_per_category: Ceiling
    max_screenshots_per_user: Ceiling
    storage_quota_mb: Ceiling
    ai_summary_enabled: bool = False
    is_default: bool = False
    enabled: bool = True
    price_monthly: float = 0.0
    price_yearly: float = 0.0
    created_at: Optional[datetime] = None
