"""Contact matrix decisions made by the tier gate."""

from types import SimpleNamespace

import pytest

from app.core.exceptions import PermissionDeniedException
from app.services import tier_gate


def _config(tier: str, **overrides: bool) -> SimpleNamespace:
    flags = {
        "can_contact_basic": True,
        "can_contact_standard": False,
        "can_contact_premium": False,
        "can_contact_vip": False,
        "surcharge_premium": False,
        "surcharge_vip": False,
    }
    flags.update(overrides)
    return SimpleNamespace(tier=tier, **flags)


class TestEvaluate:
    def test_allowed_without_surcharge(self):
        decision = tier_gate.evaluate(_config("basic"), "basic")

        assert decision.allowed is True
        assert decision.surcharge is False
        assert decision.reason is None

    def test_blocked_target_tier_has_reason(self):
        decision = tier_gate.evaluate(_config("basic"), "premium")

        assert decision.allowed is False
        assert decision.reason == "Upgrade to Premium to contact Premium users"

    def test_vip_target_blocked_for_standard(self):
        decision = tier_gate.evaluate(_config("standard", can_contact_standard=True), "vip")

        assert decision.allowed is False
        assert decision.reason == "Only Premium users can contact VIP members"

    def test_surcharge_flag_applies_only_when_allowed(self):
        config = _config(
            "premium",
            can_contact_premium=True,
            can_contact_vip=True,
            surcharge_vip=True,
        )

        assert tier_gate.evaluate(config, "vip").surcharge is True
        assert tier_gate.evaluate(config, "premium").surcharge is False

    def test_vip_requester_contacts_everyone_without_surcharge(self):
        # Row flags are ignored for VIP
        config = _config("vip", can_contact_basic=False, surcharge_premium=True)

        for target in ("basic", "standard", "premium", "vip"):
            decision = tier_gate.evaluate(config, target)
            assert decision.allowed is True
            assert decision.surcharge is False

    @pytest.mark.parametrize("target", [None, "platinum", ""])
    def test_unknown_target_tier(self, target):
        decision = tier_gate.evaluate(_config("premium"), target)

        assert decision.allowed is False
        assert decision.reason == tier_gate.UNKNOWN_TIER_REASON

    def test_missing_config(self):
        decision = tier_gate.evaluate(None, "basic")

        assert decision.allowed is False
        assert decision.reason == tier_gate.UNKNOWN_TIER_REASON

    def test_payload_shape(self):
        payload = tier_gate.evaluate(_config("basic"), "standard").to_payload()

        assert payload == {
            "allowed": False,
            "surcharge": False,
            "reason": "Your plan cannot contact Standard users",
        }


class TestEnsureAllowed:
    def test_raises_permission_denied(self):
        with pytest.raises(PermissionDeniedException) as exc_info:
            tier_gate.ensure_allowed(_config("basic"), "vip")

        exc = exc_info.value
        assert exc.code == "permission_denied"
        assert exc.target_tier == "vip"
        assert exc.to_http_exception().status_code == 403

    def test_returns_decision_when_allowed(self):
        decision = tier_gate.ensure_allowed(_config("basic"), "basic")

        assert decision.allowed is True
