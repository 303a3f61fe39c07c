"""Plan tier lookup and messaging entitlement."""

from __future__ import annotations

from typing import Literal

from marketplace_chat.models import UserProfile
from marketplace_chat.services.errors import EntitlementError

PlanTier = Literal["basic", "premium", "plus", "deluxe"]

MESSAGING_TIERS: frozenset[str] = frozenset({"plus", "deluxe"})


def plan_tier(plan_code: str | None) -> PlanTier:
    """Map a raw billing plan code onto one of the four tiers."""
    code = (plan_code or "").strip().lower()
    if "deluxe" in code or "diamond" in code:
        return "deluxe"
    if "plus" in code or code == "enterprise":
        return "plus"
    if code in ("premium", "pro"):
        return "premium"
    return "basic"


def can_message(user: UserProfile) -> bool:
    return plan_tier(user.plan_code) in MESSAGING_TIERS


def require_messaging(user: UserProfile) -> None:
    """Raise ``EntitlementError`` unless the user's tier allows messaging."""
    if not can_message(user):
        raise EntitlementError("Messaging requires a Plus or Deluxe plan")
