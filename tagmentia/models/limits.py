"""
tagmentia/models/limits.py

Limit snapshots and check verdicts.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict

from tagmentia.models.plan import Ceiling


BYTES_PER_MB = 1024 * 1024


class UserPlanLimits(BaseModel):
    """
    A user's plan ceilings plus the usage snapshot taken with them.

    This is the value the limits cache stores per user.
    """
    model_config = ConfigDict(frozen=True)

    plan_id: str
    plan_name: str
    max_categories: Ceiling
    max_videos_per_category: Ceiling
    max_screenshots_per_user: Ceiling
    storage_quota_mb: Ceiling
    ai_summary_enabled: bool
    current_categories: int


class LimitCheck(BaseModel):
    """
    Allow/deny verdict for a proposed create operation.

    Denials carry enough detail (current_usage, limit) for the caller to
    render an upgrade prompt without re-deriving numbers.
    """
    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: Optional[str] = None
    current_usage: Optional[int] = None
    limit: Optional[int] = None

    @classmethod
    def allow(cls) -> "LimitCheck":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str, *, current_usage: Optional[int] = None, limit: Optional[int] = None) -> "LimitCheck":
        return cls(allowed=False, reason=reason, current_usage=current_usage, limit=limit)


class ScreenshotLimits(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_screenshots: Ceiling
    current_screenshots: int

    @property
    def can_upload(self) -> bool:
        return self.max_screenshots.allows(self.current_screenshots)


class StorageQuota(BaseModel):
    """Storage usage against the plan's quota (quota_bytes None = unlimited)."""
    model_config = ConfigDict(frozen=True)

    quota_bytes: Optional[int]
    used_bytes: int

    @classmethod
    def from_plan(cls, storage_quota_mb: Ceiling, used_bytes: int) -> "StorageQuota":
        quota = None if storage_quota_mb.is_unlimited else storage_quota_mb.maximum * BYTES_PER_MB
        return cls(quota_bytes=quota, used_bytes=used_bytes)

    @property
    def is_unlimited(self) -> bool:
        return self.quota_bytes is None

    @property
    def remaining_bytes(self) -> Optional[int]:
        if self.quota_bytes is None:
            return None
        return max(0, self.quota_bytes - self.used_bytes)

    @property
    def quota_mb(self) -> Optional[int]:
        if self.quota_bytes is None:
            return None
        return round(self.quota_bytes / BYTES_PER_MB)

    @property
    def used_mb(self) -> int:
        return round(self.used_bytes / BYTES_PER_MB)

    @property
    def remaining_mb(self) -> Optional[int]:
        remaining = self.remaining_bytes
        if remaining is None:
            return None
        return round(remaining / BYTES_PER_MB)

    @property
    def percentage(self) -> Optional[float]:
        if not self.quota_bytes:
            return None
        return (self.used_bytes / self.quota_bytes) * 100

    def to_payload(self) -> dict:
        return {
            "quota_bytes": self.quota_bytes,
            "used_bytes": self.used_bytes,
            "remaining_bytes": self.remaining_bytes,
            "quota_mb": self.quota_mb,
            "used_mb": self.used_mb,
            "remaining_mb": self.remaining_mb,
            "percentage": self.percentage,
            "is_unlimited": self.is_unlimited,
        }
