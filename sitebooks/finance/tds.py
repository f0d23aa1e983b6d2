"""
TDS engine for payments to contractors (section 194C).

Two pure functions: ``determine_rate_percent`` picks the withholding rate for a
vendor, ``calculate`` checks the per-bill and annual thresholds and returns the
amount to withhold from one payment. The engine is called with a single
taxable base; trying alternative bases (gross-up) is the caller's policy.
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from sitebooks.core.exceptions import ValidationFailure
from sitebooks.finance.money import ZERO, MoneyInput, percent_of, round2, to_decimal

PENALTY_RATE_206AA = Decimal("20")
INDIVIDUAL_RATE = Decimal("1")
OTHER_RATE = Decimal("2")
TRANSPORTER_MAX_VEHICLES = 10


class VendorLegalType(str, Enum):
    INDIVIDUAL = "INDIVIDUAL"
    HUF = "HUF"
    FIRM = "FIRM"
    COMPANY = "COMPANY"
    OTHER = "OTHER"


class ThresholdBreached(str, Enum):
    NONE = "NONE"
    SINGLE = "SINGLE"
    AGGREGATE = "AGGREGATE"
    BOTH = "BOTH"


@dataclass(frozen=True)
class TdsProfile:
    """Read-only snapshot of the vendor fields the engine looks at."""
    legal_type: VendorLegalType
    pan: Optional[str]
    is_transporter: bool
    transporter_vehicle_count: Optional[int]
    tds_override_rate: Optional[Decimal]
    tds_threshold_single: Decimal
    tds_threshold_annual: Decimal

    @classmethod
    def from_vendor(cls, vendor: Any) -> "TdsProfile":
        return cls(
            legal_type=_legal_type(vendor.legal_type),
            pan=vendor.pan,
            is_transporter=bool(vendor.is_transporter),
            transporter_vehicle_count=vendor.transporter_vehicle_count,
            tds_override_rate=(
                to_decimal(vendor.tds_override_rate) if vendor.tds_override_rate is not None else None
            ),
            tds_threshold_single=to_decimal(vendor.tds_threshold_single),
            tds_threshold_annual=to_decimal(vendor.tds_threshold_annual),
        )


@dataclass(frozen=True)
class TdsResult:
    applicable: bool
    rate_pct: Decimal
    tds_amount: Decimal
    threshold_breached: ThresholdBreached
    reason: str


def _legal_type(value: Any) -> VendorLegalType:
    if isinstance(value, VendorLegalType):
        return value
    try:
        return VendorLegalType(str(value).upper())
    except ValueError:
        raise ValidationFailure(
            f"Unknown vendor legal type: {value!r}",
            {"constraint": "legal_type", "value": str(value)},
        )


def _threshold_flag(single_exceeds: bool, annual_exceeds: bool) -> ThresholdBreached:
    if single_exceeds and annual_exceeds:
        return ThresholdBreached.BOTH
    if single_exceeds:
        return ThresholdBreached.SINGLE
    if annual_exceeds:
        return ThresholdBreached.AGGREGATE
    return ThresholdBreached.NONE


def _has_pan(vendor: Any) -> bool:
    return bool((vendor.pan or "").strip())


def is_transporter_exempt(
    vendor: Any,
    has_transporter_declaration: bool,
    max_vehicles: int = TRANSPORTER_MAX_VEHICLES,
) -> bool:
    """Transporter owning at most ``max_vehicles`` goods carriages who filed the declaration."""
    count = vendor.transporter_vehicle_count
    return bool(
        vendor.is_transporter
        and has_transporter_declaration
        and count is not None
        and count <= max_vehicles
    )


def determine_rate_percent(
    vendor: Any,
    has_transporter_declaration: bool = False,
    max_vehicles: int = TRANSPORTER_MAX_VEHICLES,
) -> Decimal:
    """Withholding rate in percent. First matching rule wins."""
    if vendor.tds_override_rate is not None:
        return to_decimal(vendor.tds_override_rate)

    if is_transporter_exempt(vendor, has_transporter_declaration, max_vehicles):
        return ZERO

    if not _has_pan(vendor):
        return PENALTY_RATE_206AA

    if _legal_type(vendor.legal_type) in (VendorLegalType.INDIVIDUAL, VendorLegalType.HUF):
        return INDIVIDUAL_RATE

    return OTHER_RATE


def format_rate(rate_pct: Decimal) -> str:
    return f"{rate_pct.normalize():f}"


def calculate(
    vendor: Any,
    current_amount: MoneyInput,
    ytd_amount: MoneyInput,
    has_transporter_declaration: bool = False,
    max_vehicles: int = TRANSPORTER_MAX_VEHICLES,
) -> TdsResult:
    """Compute TDS on ``current_amount`` given the fiscal-year-to-date base."""
    current = to_decimal(current_amount)
    ytd = to_decimal(ytd_amount)
    if current < ZERO:
        raise ValidationFailure("Current taxable amount cannot be negative", {"current_amount": str(current)})
    if ytd < ZERO:
        raise ValidationFailure("Year-to-date taxable amount cannot be negative", {"ytd_amount": str(ytd)})

    after_this_payment = ytd + current
    single_exceeds = current > to_decimal(vendor.tds_threshold_single)
    annual_exceeds = after_this_payment > to_decimal(vendor.tds_threshold_annual)
    breached = _threshold_flag(single_exceeds, annual_exceeds)

    rate_pct = determine_rate_percent(vendor, has_transporter_declaration, max_vehicles)
    applicable = rate_pct > ZERO and (single_exceeds or annual_exceeds)
    tds_amount = round2(percent_of(current, rate_pct)) if applicable else round2(ZERO)

    if not applicable:
        if vendor.tds_override_rate is None and is_transporter_exempt(vendor, has_transporter_declaration, max_vehicles):
            reason = "TDS 0% (transporter exemption)."
        else:
            reason = "Below thresholds or exempt."
    elif vendor.tds_override_rate is None and not _has_pan(vendor):
        reason = f"TDS {format_rate(rate_pct)}% under 206AA (PAN not provided)."
    else:
        reason = f"TDS {format_rate(rate_pct)}% under 194C (thresholds crossed: {breached.value})."

    return TdsResult(
        applicable=applicable,
        rate_pct=rate_pct,
        tds_amount=tds_amount,
        threshold_breached=breached,
        reason=reason,
    )
