from __future__ import annotations

import math
from dataclasses import dataclass

from billsplit.api.allocation import AllocationResult, TierResult, TierUsage, allocate_usage
from billsplit.api.tenants import TenantSet
from billsplit.api.tiers import TierSchedule


DOMESTIC = "domestic"
NON_DOMESTIC = "nonDomestic"
CUSTOMER_TYPES = (DOMESTIC, NON_DOMESTIC)

TAX_EXEMPTION_KWH = 600.0


@dataclass(frozen=True)
class IcptBand:
    max_kwh: float
    rate: float
    label: str


DOMESTIC_ICPT_BANDS = (
    IcptBand(max_kwh=600.0, rate=-0.02, label="≤600 kWh (Rebate)"),
    IcptBand(max_kwh=1500.0, rate=0.0, label="601-1500 kWh"),
    IcptBand(max_kwh=math.inf, rate=0.10, label=">1500 kWh"),
)

NON_DOMESTIC_ICPT_RATES = {
    "lv": 0.027,
    "mv_hv": 0.16,
    "streetlight": 0.09,
    "water": 0.027,
}


class ChargeConfigError(ValueError):
    """Raised for an unknown customer type or ICPT category."""


@dataclass(frozen=True)
class Adjustment:
    amount: float
    rate: float
    label: str

    @property
    def is_rebate(self) -> bool:
        return self.amount < 0


@dataclass(frozen=True)
class TenantCharge:
    tenant_id: str
    name: str
    consumption: float
    breakdown: list[TierUsage]
    base_cost: float
    adjustment: float
    tax: float
    total: float


@dataclass(frozen=True)
class BillResult:
    tiers: list[TierResult]
    tenants: list[TenantCharge]
    total_consumption: float
    base_total: float
    adjustment: Adjustment
    tax_rate_percent: float
    tax_applied: bool
    tax: float
    grand_total: float


def compute_adjustment(total_kwh: float, customer_type: str, category: str = "lv") -> Adjustment:
    if customer_type == DOMESTIC:
        band = next(b for b in DOMESTIC_ICPT_BANDS if total_kwh <= b.max_kwh)
        return Adjustment(amount=total_kwh * band.rate, rate=band.rate, label=f"Domestic: {band.label}")
    if customer_type == NON_DOMESTIC:
        if category not in NON_DOMESTIC_ICPT_RATES:
            raise ChargeConfigError(f"Unknown ICPT category: {category!r}")
        rate = NON_DOMESTIC_ICPT_RATES[category]
        return Adjustment(amount=total_kwh * rate, rate=rate, label=f"Non-Domestic: {category.upper()}")
    raise ChargeConfigError(f"Unknown customer type: {customer_type!r}")


def is_taxable(total_kwh: float) -> bool:
    return total_kwh > TAX_EXEMPTION_KWH


def compute_tax(total_kwh: float, tier_cost_total: float, adjustment: float, tax_rate_percent: float) -> float:
    if not is_taxable(total_kwh):
        return 0.0
    return (tier_cost_total + adjustment) * tax_rate_percent / 100


def consumption_ratio(consumption: float, total_kwh: float) -> float:
    if total_kwh <= 0:
        return 0.0
    return consumption / total_kwh


def apply_charges(
    allocation: AllocationResult,
    tenants: TenantSet,
    tax_rate_percent: float,
    customer_type: str,
    category: str = "lv",
) -> BillResult:
    total_kwh = tenants.total_consumption
    base_total = allocation.base_total
    adjustment = compute_adjustment(total_kwh, customer_type, category)
    tax = compute_tax(total_kwh, base_total, adjustment.amount, tax_rate_percent)

    charges: list[TenantCharge] = []
    for position, (tenant, alloc) in enumerate(zip(tenants, allocation.tenants), start=1):
        ratio = consumption_ratio(tenant.consumption, total_kwh)
        tenant_adjustment = adjustment.amount * ratio
        tenant_tax = tax * ratio
        charges.append(
            TenantCharge(
                tenant_id=tenant.id,
                name=tenant.display_name(position),
                consumption=tenant.consumption,
                breakdown=alloc.breakdown,
                base_cost=alloc.base_cost,
                adjustment=tenant_adjustment,
                tax=tenant_tax,
                total=alloc.base_cost + tenant_adjustment + tenant_tax,
            )
        )

    return BillResult(
        tiers=allocation.tiers,
        tenants=charges,
        total_consumption=total_kwh,
        base_total=base_total,
        adjustment=adjustment,
        tax_rate_percent=tax_rate_percent,
        tax_applied=is_taxable(total_kwh),
        tax=tax,
        grand_total=base_total + adjustment.amount + tax,
    )


def compute_bill(
    schedule: TierSchedule,
    tenants: TenantSet,
    tax_rate_percent: float,
    customer_type: str = DOMESTIC,
    category: str = "lv",
) -> BillResult:
    allocation = allocate_usage(list(schedule), list(tenants))
    return apply_charges(allocation, tenants, tax_rate_percent, customer_type, category)
