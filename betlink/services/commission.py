"""
Commission evaluation for CPA, RevShare and Hybrid houses.

Pure functions over a house's commission settings; nothing here touches the
database. Amounts stay unrounded Decimals until `quantize_money` is applied
at persistence or serialization time.
"""
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from ..core.exceptions import CommissionConfigError
from ..models.betting_house import CommissionType

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENTS = Decimal("0.01")

DEPOSIT_EVENTS = frozenset({"deposit", "first_deposit"})
PROFIT_EVENTS = frozenset({"profit", "revenue"})
REVSHARE_EVENTS = PROFIT_EVENTS | {"deposit"}
NOT_APPLICABLE = "not applicable"


@dataclass
class CommissionResult:
    commission_type: str
    affiliate_commission: Decimal = ZERO
    master_commission: Decimal = ZERO
    valid: bool = False
    reason: Optional[str] = None
    cpa_paid: bool = False
    breakdown: Dict[str, Any] = field(default_factory=dict)


@dataclass
class _Component:
    affiliate: Decimal = ZERO
    master: Decimal = ZERO
    valid: bool = False
    reason: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


def to_decimal(value) -> Decimal:
    """None becomes zero; floats go through str so 0.1 stays 0.1."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"not a decimal: {value!r}") from e


def quantize_money(value) -> Decimal:
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def revshare_split(amount: Decimal, total_percent: Decimal, affiliate_percent: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Split a RevShare amount between affiliate and master.

    `amount` is already the house's revenue share, so the affiliate gets the
    fraction affiliate_percent / total_percent of it and the master keeps the
    rest. Both ingestion paths go through this function.
    """
    total_percent = to_decimal(total_percent)
    affiliate_percent = to_decimal(affiliate_percent)
    if total_percent <= ZERO:
        raise CommissionConfigError("RevShare total percent must be greater than 0")
    if affiliate_percent <= ZERO or affiliate_percent > total_percent:
        raise CommissionConfigError(
            f"RevShare affiliate percent {affiliate_percent} must be in (0, {total_percent}]"
        )
    affiliate = amount * affiliate_percent / total_percent
    return affiliate, amount - affiliate


def cpa_split(total: Decimal, affiliate_percent: Decimal) -> Tuple[Decimal, Decimal]:
    affiliate = total * to_decimal(affiliate_percent) / HUNDRED
    return affiliate, total - affiliate


def _cpa_component(house, event_type: str, amount: Decimal, cpa_already_paid: bool) -> _Component:
    if event_type not in DEPOSIT_EVENTS:
        return _Component(reason=f"CPA {NOT_APPLICABLE} to '{event_type}' events")

    total = to_decimal(house.cpa_value)
    if total <= ZERO:
        raise CommissionConfigError("CPA value is not configured")

    if cpa_already_paid:
        return _Component(reason="CPA already paid for this customer")

    min_deposit = to_decimal(house.min_deposit)
    if amount < min_deposit:
        return _Component(reason=f"Deposit {amount} below minimum deposit {min_deposit}")

    percent = to_decimal(house.cpa_affiliate_percent)
    if percent <= ZERO:
        return _Component(reason="CPA affiliate percent not configured")
    if percent > HUNDRED:
        raise CommissionConfigError(f"CPA affiliate percent {percent} exceeds 100")

    affiliate, master = cpa_split(total, percent)
    return _Component(
        affiliate=affiliate,
        master=master,
        valid=True,
        details={
            "cpa_value": str(total),
            "affiliate_percent": str(percent),
            "min_deposit": str(min_deposit),
        },
    )


def _revshare_component(house, event_type: str, amount: Decimal, events) -> _Component:
    if event_type not in events:
        return _Component(reason=f"RevShare {NOT_APPLICABLE} to '{event_type}' events")
    if amount <= ZERO:
        return _Component(reason="RevShare requires a positive amount")

    affiliate, master = revshare_split(amount, house.revshare_value, house.revshare_affiliate_percent)
    return _Component(
        affiliate=affiliate,
        master=master,
        valid=True,
        details={
            "total_percent": str(to_decimal(house.revshare_value)),
            "affiliate_percent": str(to_decimal(house.revshare_affiliate_percent)),
            "amount": str(amount),
        },
    )


def evaluate(house, event_type: str, amount, cpa_already_paid: bool) -> CommissionResult:
    """
    Compute the affiliate/master split for one conversion event.

    Policy outcomes such as an already paid CPA or a deposit under the
    minimum come back as a zero-commission result with a reason. So do
    incomplete house settings; nothing here raises.
    """
    commission_type = house.commission_type
    result = CommissionResult(commission_type=commission_type)
    amount = to_decimal(amount)

    components: Dict[str, _Component] = {}
    try:
        if commission_type == CommissionType.CPA.value:
            components["cpa"] = _cpa_component(house, event_type, amount, cpa_already_paid)
        elif commission_type == CommissionType.REVSHARE.value:
            components["revshare"] = _revshare_component(house, event_type, amount, REVSHARE_EVENTS)
        elif commission_type == CommissionType.HYBRID.value:
            if event_type in DEPOSIT_EVENTS:
                components["cpa"] = _cpa_component(house, event_type, amount, cpa_already_paid)
            if event_type in PROFIT_EVENTS:
                components["revshare"] = _revshare_component(house, event_type, amount, PROFIT_EVENTS)
        else:
            raise CommissionConfigError(f"Unknown commission type '{commission_type}'")
    except CommissionConfigError as e:
        result.reason = str(e)
        result.breakdown = {"error": str(e)}
        return result

    if not components:
        result.reason = NOT_APPLICABLE
        return result

    for name, comp in components.items():
        result.affiliate_commission += comp.affiliate
        result.master_commission += comp.master
        result.breakdown[name] = {
            "valid": comp.valid,
            "affiliate": str(quantize_money(comp.affiliate)),
            "master": str(quantize_money(comp.master)),
            **({"reason": comp.reason} if comp.reason else {}),
            **comp.details,
        }

    result.valid = any(c.valid for c in components.values())
    result.cpa_paid = "cpa" in components and components["cpa"].valid
    if not result.valid:
        result.reason = "; ".join(c.reason for c in components.values() if c.reason) or NOT_APPLICABLE
    return result


def validate_house_commission_config(house) -> List[str]:
    """Every commission-setting problem on `house`, empty when it is usable."""
    errors: List[str] = []
    commission_type = house.commission_type

    if commission_type not in {t.value for t in CommissionType}:
        return [f"Unknown commission type '{commission_type}'"]

    if commission_type in (CommissionType.CPA.value, CommissionType.HYBRID.value):
        cpa_value = to_decimal(house.cpa_value)
        percent = to_decimal(house.cpa_affiliate_percent)
        if cpa_value <= ZERO:
            errors.append("cpa_value must be greater than 0")
        if not ZERO < percent <= HUNDRED:
            errors.append("cpa_affiliate_percent must be greater than 0 and at most 100")
        if house.min_deposit is not None and to_decimal(house.min_deposit) < ZERO:
            errors.append("min_deposit must not be negative")

    if commission_type in (CommissionType.REVSHARE.value, CommissionType.HYBRID.value):
        total = to_decimal(house.revshare_value)
        percent = to_decimal(house.revshare_affiliate_percent)
        if not ZERO < total <= HUNDRED:
            errors.append("revshare_value must be greater than 0 and at most 100")
        if percent <= ZERO:
            errors.append("revshare_affiliate_percent must be greater than 0")
        elif percent > total:
            errors.append(
                f"revshare_affiliate_percent ({percent}) cannot exceed revshare_value ({total})"
            )

    return errors
