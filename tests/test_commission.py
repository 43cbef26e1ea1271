"""
Tests for the commission evaluator: CPA, RevShare and Hybrid splits,
policy gates and house setting validation.
"""
from decimal import Decimal
from types import SimpleNamespace

import pytest

from betlink.core.exceptions import CommissionConfigError
from betlink.services.commission import (
    evaluate,
    quantize_money,
    revshare_split,
    validate_house_commission_config,
)


def house(**overrides):
    fields = dict(
        commission_type="CPA",
        cpa_value=Decimal("150.00"),
        cpa_affiliate_percent=Decimal("70"),
        revshare_value=None,
        revshare_affiliate_percent=None,
        min_deposit=Decimal("50.00"),
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def revshare_house(**overrides):
    fields = dict(
        commission_type="RevShare",
        cpa_value=None,
        cpa_affiliate_percent=None,
        revshare_value=Decimal("35"),
        revshare_affiliate_percent=Decimal("20"),
    )
    fields.update(overrides)
    return house(**fields)


class TestCPA:
    def test_split(self):
        result = evaluate(house(), "deposit", Decimal("100"), cpa_already_paid=False)

        assert result.valid
        assert result.cpa_paid
        assert quantize_money(result.affiliate_commission) == Decimal("105.00")
        assert quantize_money(result.master_commission) == Decimal("45.00")
        assert result.reason is None

    def test_first_deposit_qualifies(self):
        result = evaluate(house(), "first_deposit", Decimal("50"), cpa_already_paid=False)
        assert result.valid
        assert quantize_money(result.affiliate_commission) == Decimal("105.00")

    def test_below_minimum_deposit(self):
        result = evaluate(house(), "deposit", Decimal("30"), cpa_already_paid=False)

        assert not result.valid
        assert result.affiliate_commission == 0
        assert result.master_commission == 0
        assert "minimum" in result.reason

    def test_already_paid(self):
        result = evaluate(house(), "deposit", Decimal("500"), cpa_already_paid=True)

        assert not result.valid
        assert not result.cpa_paid
        assert result.affiliate_commission == 0
        assert "already paid" in result.reason

    def test_affiliate_percent_unconfigured(self):
        result = evaluate(house(cpa_affiliate_percent=None), "deposit", Decimal("100"), False)
        assert not result.valid
        assert result.affiliate_commission == 0
        assert result.reason

    def test_missing_cpa_value_is_zero_result(self):
        result = evaluate(house(cpa_value=None), "deposit", Decimal("100"), False)
        assert not result.valid
        assert result.affiliate_commission == 0
        assert "CPA value" in result.reason

    @pytest.mark.parametrize("event", ["click", "registration", "payout", "chargeback", "profit"])
    def test_other_events_not_applicable(self, event):
        result = evaluate(house(), event, Decimal("100"), False)
        assert not result.valid
        assert result.affiliate_commission == 0
        assert "not applicable" in result.reason


class TestRevShare:
    def test_split_is_percent_of_pool(self):
        result = evaluate(revshare_house(), "profit", Decimal("100"), False)

        affiliate = quantize_money(result.affiliate_commission)
        master = quantize_money(result.master_commission)
        assert result.valid
        assert affiliate == Decimal("57.14")
        assert master == Decimal("42.86")
        assert abs(affiliate + master - Decimal("100")) <= Decimal("0.01")
        assert not result.cpa_paid

    def test_deposit_and_revenue_apply(self):
        for event in ("deposit", "revenue"):
            assert evaluate(revshare_house(), event, Decimal("10"), False).valid

    def test_requires_positive_amount(self):
        result = evaluate(revshare_house(), "profit", Decimal("0"), False)
        assert not result.valid
        assert result.reason

    def test_affiliate_percent_above_total(self):
        result = evaluate(revshare_house(revshare_affiliate_percent=Decimal("40")), "profit", Decimal("100"), False)
        assert not result.valid
        assert result.affiliate_commission == 0
        assert "affiliate percent" in result.reason

    def test_revshare_split_helper(self):
        affiliate, master = revshare_split(Decimal("200"), Decimal("40"), Decimal("10"))
        assert affiliate == Decimal("50")
        assert master == Decimal("150")

    def test_revshare_split_rejects_zero_total(self):
        with pytest.raises(CommissionConfigError):
            revshare_split(Decimal("100"), Decimal("0"), Decimal("10"))


class TestHybrid:
    def hybrid(self):
        return house(
            commission_type="Hybrid",
            revshare_value=Decimal("30"),
            revshare_affiliate_percent=Decimal("15"),
        )

    def test_deposit_pays_cpa_only(self):
        result = evaluate(self.hybrid(), "deposit", Decimal("100"), False)
        assert result.valid
        assert result.cpa_paid
        assert quantize_money(result.affiliate_commission) == Decimal("105.00")
        assert set(result.breakdown) == {"cpa"}

    def test_profit_pays_revshare_only(self):
        result = evaluate(self.hybrid(), "profit", Decimal("100"), False)
        assert result.valid
        assert not result.cpa_paid
        assert quantize_money(result.affiliate_commission) == Decimal("50.00")
        assert set(result.breakdown) == {"revshare"}

    def test_cpa_gate_does_not_block_revshare(self):
        result = evaluate(self.hybrid(), "revenue", Decimal("20"), cpa_already_paid=True)
        assert result.valid
        assert quantize_money(result.affiliate_commission) == Decimal("10.00")

    def test_registration_not_applicable(self):
        result = evaluate(self.hybrid(), "registration", None, False)
        assert not result.valid
        assert result.reason == "not applicable"


def test_quantize_rounds_half_up():
    assert quantize_money(Decimal("1.005")) == Decimal("1.01")
    assert quantize_money(None) == Decimal("0.00")


def test_unknown_commission_type():
    result = evaluate(house(commission_type="Flat"), "deposit", Decimal("100"), False)
    assert not result.valid
    assert "Unknown commission type" in result.reason


class TestValidateHouseCommissionConfig:
    def test_valid_cpa(self):
        assert validate_house_commission_config(house()) == []

    def test_valid_revshare(self):
        assert validate_house_commission_config(revshare_house()) == []

    def test_hybrid_reports_every_problem(self):
        errors = validate_house_commission_config(house(
            commission_type="Hybrid",
            cpa_value=Decimal("0"),
            cpa_affiliate_percent=Decimal("120"),
            revshare_value=Decimal("20"),
            revshare_affiliate_percent=Decimal("25"),
        ))
        assert len(errors) == 3
        assert any("revshare_affiliate_percent" in e for e in errors)

    def test_unknown_type(self):
        assert validate_house_commission_config(house(commission_type="Other"))
