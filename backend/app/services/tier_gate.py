# backend/app/services/tier_gate.py
"""
Tier/Permission Gate.

Decides whether a member of one tier may book a member of another and whether
that booking carries a credit surcharge. Pure functions over an already loaded
``AccountTierConfig``; call it before reading or writing any balance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from ..core.enums import AccountTier
from ..core.exceptions import PermissionDeniedException

UNKNOWN_TIER_REASON = "Unknown tier"

_DENIAL_REASONS = {
    AccountTier.BASIC: "Your plan cannot contact Basic users",
    AccountTier.STANDARD: "Your plan cannot contact Standard users",
    AccountTier.PREMIUM: "Upgrade to Premium to contact Premium users",
    AccountTier.VIP: "Only Premium users can contact VIP members",
}


class TierPermissions(Protocol):
    tier: str
    can_contact_basic: bool
    can_contact_standard: bool
    can_contact_premium: bool
    can_contact_vip: bool
    surcharge_premium: bool
    surcharge_vip: bool


@dataclass(frozen=True)
class TierGateDecision:
    allowed: bool
    surcharge: bool
    reason: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {"allowed": self.allowed, "surcharge": self.surcharge, "reason": self.reason}


def _parse_tier(value: Optional[str]) -> Optional[AccountTier]:
    try:
        return AccountTier(value) if value is not None else None
    except ValueError:
        return None


def evaluate(config: Optional[TierPermissions], target_tier: Optional[str]) -> TierGateDecision:
    """Evaluate the contact matrix of ``config`` against ``target_tier``."""
    target = _parse_tier(target_tier)
    if config is None or target is None:
        return TierGateDecision(allowed=False, surcharge=False, reason=UNKNOWN_TIER_REASON)

    # VIP can contact everyone, never surcharged
    if _parse_tier(config.tier) is AccountTier.VIP:
        return TierGateDecision(allowed=True, surcharge=False)

    if target is AccountTier.BASIC:
        allowed, surcharge = bool(config.can_contact_basic), False
    elif target is AccountTier.STANDARD:
        allowed, surcharge = bool(config.can_contact_standard), False
    elif target is AccountTier.PREMIUM:
        allowed, surcharge = bool(config.can_contact_premium), bool(config.surcharge_premium)
    else:
        allowed, surcharge = bool(config.can_contact_vip), bool(config.surcharge_vip)

    if not allowed:
        return TierGateDecision(allowed=False, surcharge=False, reason=_DENIAL_REASONS[target])
    return TierGateDecision(allowed=True, surcharge=surcharge)


def ensure_allowed(
    config: Optional[TierPermissions], target_tier: Optional[str]
) -> TierGateDecision:
    """Like ``evaluate`` but raises PermissionDeniedException when the contact is blocked."""
    decision = evaluate(config, target_tier)
    if not decision.allowed:
        raise PermissionDeniedException(
            decision.reason or UNKNOWN_TIER_REASON, target_tier=target_tier
        )
    return decision
