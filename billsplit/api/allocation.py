from __future__ import annotations

from dataclasses import dataclass

from billsplit.api.tenants import Tenant
from billsplit.api.tiers import TierBand, UpperBound


@dataclass(frozen=True)
class TierResult:
    tier_id: str
    start: float
    end: UpperBound
    rate: float
    usage: float
    cost: float


@dataclass(frozen=True)
class TierUsage:
    tier_id: str
    usage: float
    rate: float
    cost: float


@dataclass(frozen=True)
class TenantAllocation:
    tenant_id: str
    consumption: float
    breakdown: list[TierUsage]
    base_cost: float


@dataclass(frozen=True)
class AllocationResult:
    tiers: list[TierResult]
    tenants: list[TenantAllocation]

    @property
    def base_total(self) -> float:
        return sum(tier.cost for tier in self.tiers)

    @property
    def total_usage(self) -> float:
        return sum(tier.usage for tier in self.tiers)


class _Scratch:
    """Per-run working copy of one tenant's unallocated demand."""

    __slots__ = ("tenant", "remaining", "usage")

    def __init__(self, tenant: Tenant, tier_ids: list[str]) -> None:
        self.tenant = tenant
        self.remaining = tenant.consumption
        self.usage = {tier_id: 0.0 for tier_id in tier_ids}


def _fill_tier(tier_id: str, intake: float, scratch: list[_Scratch]) -> float:
    """Water-fill ``intake`` units of one tier across the active tenants.

    Returns the part of the intake left unallocated.
    """
    left = intake
    while left > 0:
        active = [s for s in scratch if s.remaining > 0]
        if not active:
            break

        share = left / len(active)
        allocated = 0.0
        for s in active:
            take = min(s.remaining, share)
            s.usage[tier_id] += take
            s.remaining -= take
            allocated += take

        if allocated <= 0:
            break
        left -= allocated
    return left


def allocate_usage(bands: list[TierBand], tenants: list[Tenant]) -> AllocationResult:
    """Split the tenants' combined consumption across the tier bands.

    Bands are drawn on in the order given, each only once aggregate demand has
    exhausted the ones before it. Within a band tenants with less outstanding
    demand are satisfied in full before the rest get more than an equal share.
    """
    tier_ids = [band.id for band in bands]
    scratch = [_Scratch(tenant, tier_ids) for tenant in tenants]

    tier_results: list[TierResult] = []
    for band in bands:
        remaining_demand = sum(s.remaining for s in scratch)
        intake = min(band.capacity, remaining_demand)
        left = _fill_tier(band.id, intake, scratch)
        usage = intake - left
        tier_results.append(
            TierResult(
                tier_id=band.id,
                start=band.start,
                end=band.end,
                rate=band.rate,
                usage=usage,
                cost=usage * band.rate,
            )
        )

    tenant_results: list[TenantAllocation] = []
    for s in scratch:
        breakdown = [
            TierUsage(
                tier_id=band.id,
                usage=s.usage[band.id],
                rate=band.rate,
                cost=s.usage[band.id] * band.rate,
            )
            for band in bands
        ]
        tenant_results.append(
            TenantAllocation(
                tenant_id=s.tenant.id,
                consumption=s.tenant.consumption,
                breakdown=breakdown,
                base_cost=sum(item.cost for item in breakdown),
            )
        )

    return AllocationResult(tiers=tier_results, tenants=tenant_results)
