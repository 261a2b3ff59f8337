"""
tagmentia/features/limits/service.py

Limit evaluator.

Decides whether a proposed create operation is allowed under the user's
current plan. Every check returns a LimitCheck and never raises: a failed
data fetch is logged and turned into a denial (fail closed), so a quota
check on a user-facing path can deny but never crash. enforce() is the
raising variant for callers that want a denial as a QuotaExceededError.

Plan ceilings and the category count come from the LimitsCache; per-category
video counts, screenshot counts and storage bytes are always read live.
"""

from enum import Enum
import logging
from types import ModuleType
from typing import Optional, Union

from tagmentia.core.errors import LimitsUnavailableError, QuotaExceededError, ValidationError
from tagmentia.features.limits.cache import LimitsCache
from tagmentia.features.usage import service as usage_service
from tagmentia.models.limits import LimitCheck, BYTES_PER_MB


logger = logging.getLogger(__name__)

GENERIC_FAILURE_REASON = "Unexpected error checking limits"


class Feature(str, Enum):
    """Gated actions understood by check_feature_access."""
    CATEGORIES = "categories"
    VIDEOS = "videos"
    AI_SUMMARY = "ai_summary"
    SCREENSHOTS = "screenshots"


class LimitEvaluator:
    """
    Quota checks for one application.

    Args:
        cache: Limits cache shared with whatever invalidates it
        accessors: Object exposing the live counters (count_videos_in_category,
            count_screenshots, sum_screenshot_bytes); defaults to the usage
            service module
    """

    def __init__(self, cache: LimitsCache, accessors: Union[ModuleType, object] = usage_service):
        self.cache = cache
        self.accessors = accessors

    def _fail_closed(self, check: str, user_id: str, exc: Exception) -> LimitCheck:
        logger.error(
            "[limits] check failed, denying",
            extra={"check": check, "user_id": user_id, "error": str(exc)},
            exc_info=True,
        )
        return LimitCheck.deny(GENERIC_FAILURE_REASON)

    def _log_denial(self, check: str, user_id: str, verdict: LimitCheck, **fields) -> None:
        logger.warning(
            "[limits] DENY",
            extra={
                "check": check,
                "user_id": user_id,
                "current_usage": verdict.current_usage,
                "limit": verdict.limit,
                **fields,
            },
        )

    def check_category_creation(self, user_id: str) -> LimitCheck:
        try:
            limits = self.cache.get(user_id)
        except Exception as e:
            return self._fail_closed("categories", user_id, e)

        ceiling = limits.max_categories
        if ceiling.allows(limits.current_categories):
            return LimitCheck.allow()

        verdict = LimitCheck.deny(
            f"You've reached your plan limit of {ceiling} categories",
            current_usage=limits.current_categories,
            limit=ceiling.maximum,
        )
        self._log_denial("categories", user_id, verdict, plan_id=limits.plan_id)
        return verdict

    def check_video_addition(self, user_id: str, category_id: str) -> LimitCheck:
        try:
            limits = self.cache.get(user_id)
            ceiling = limits.max_videos_per_category
            if ceiling.is_unlimited:
                return LimitCheck.allow()
            current = self.accessors.count_videos_in_category(user_id, category_id)
        except Exception as e:
            return self._fail_closed("videos", user_id, e)

        if ceiling.allows(current):
            return LimitCheck.allow()

        verdict = LimitCheck.deny(
            f"You've reached your plan limit of {ceiling} videos per category",
            current_usage=current,
            limit=ceiling.maximum,
        )
        self._log_denial("videos", user_id, verdict, plan_id=limits.plan_id, category_id=category_id)
        return verdict

    def check_ai_summary_access(self, user_id: str) -> LimitCheck:
        try:
            limits = self.cache.get(user_id)
        except Exception as e:
            return self._fail_closed("ai_summary", user_id, e)

        if limits.ai_summary_enabled:
            return LimitCheck.allow()

        verdict = LimitCheck.deny("AI Summary feature is only available for Gold Plan users")
        self._log_denial("ai_summary", user_id, verdict, plan_id=limits.plan_id)
        return verdict

    def check_screenshot_upload(self, user_id: str, count: int = 1) -> LimitCheck:
        """Allowed iff the screenshot ceiling admits `count` more uploads."""
        try:
            limits = self.cache.get(user_id)
            ceiling = limits.max_screenshots_per_user
            if ceiling.is_unlimited:
                return LimitCheck.allow()
            current = self.accessors.count_screenshots(user_id)
        except Exception as e:
            return self._fail_closed("screenshots", user_id, e)

        if ceiling.allows(current, requested=count):
            return LimitCheck.allow()

        verdict = LimitCheck.deny(
            "You've reached your screenshot limit. Upgrade your plan to add more screenshots.",
            current_usage=current,
            limit=ceiling.maximum,
        )
        self._log_denial("screenshots", user_id, verdict, plan_id=limits.plan_id, requested=count)
        return verdict

    def check_storage_upload(self, user_id: str, size_bytes: int) -> LimitCheck:
        """Allowed iff storage is unlimited or used + size_bytes fits the quota.

        Usage and limit are reported in bytes.
        """
        try:
            limits = self.cache.get(user_id)
            ceiling = limits.storage_quota_mb
            if ceiling.is_unlimited:
                return LimitCheck.allow()
            used = self.accessors.sum_screenshot_bytes(user_id)
        except Exception as e:
            return self._fail_closed("storage", user_id, e)

        quota_bytes = ceiling.maximum * BYTES_PER_MB
        if used + size_bytes <= quota_bytes:
            return LimitCheck.allow()

        verdict = LimitCheck.deny(
            "You've reached your storage limit. Delete older screenshots or upgrade your plan.",
            current_usage=used,
            limit=quota_bytes,
        )
        self._log_denial("storage", user_id, verdict, plan_id=limits.plan_id, size_bytes=size_bytes)
        return verdict

    def check_feature_access(
        self,
        user_id: str,
        feature: Union[Feature, str],
        category_id: Optional[str] = None,
    ) -> LimitCheck:
        """Dispatch to the matching check by feature name."""
        try:
            feature = Feature(feature)
        except ValueError:
            logger.warning("[limits] unknown feature", extra={"user_id": user_id, "feature": str(feature)})
            return LimitCheck.deny("Unknown feature")

        if feature is Feature.CATEGORIES:
            return self.check_category_creation(user_id)
        if feature is Feature.VIDEOS:
            if not category_id:
                return LimitCheck.deny("Category ID required for video addition check")
            return self.check_video_addition(user_id, category_id)
        if feature is Feature.AI_SUMMARY:
            return self.check_ai_summary_access(user_id)
        return self.check_screenshot_upload(user_id)

    def enforce(
        self,
        user_id: str,
        feature: Union[Feature, str],
        category_id: Optional[str] = None,
    ) -> LimitCheck:
        """
        check_feature_access for callers that want a hard failure.

        Raises:
            ValidationError: Unknown feature
            QuotaExceededError: The plan ceiling denies the action
            LimitsUnavailableError: The check itself failed (fail closed)
        """
        try:
            requested = Feature(feature)
        except ValueError:
            raise ValidationError(f"Unknown feature: {feature}")
        if requested is Feature.VIDEOS and not category_id:
            raise ValidationError("category_id is required for the videos feature")

        verdict = self.check_feature_access(user_id, feature, category_id)
        if verdict.allowed:
            return verdict
        if verdict.reason == GENERIC_FAILURE_REASON:
            raise LimitsUnavailableError(GENERIC_FAILURE_REASON)
        raise QuotaExceededError.from_check(verdict)
