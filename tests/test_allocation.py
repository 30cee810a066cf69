import math

import pytest

from billsplit.api.allocation import allocate_usage
from billsplit.api.tenants import make_tenant
from billsplit.api.tiers import default_schedule, make_band


def _usage_by_tenant(result) -> dict[str, list[float]]:
    return {t.tenant_id: [item.usage for item in t.breakdown] for t in result.tenants}


def test_reference_scenario_tier_usage() -> None:
    bands = list(default_schedule())
    a = make_tenant("A", 250)
    b = make_tenant("B", 550)

    result = allocate_usage(bands, [a, b])

    assert [tier.usage for tier in result.tiers] == [200.0, 100.0, 300.0, 200.0]
    usage = _usage_by_tenant(result)
    assert usage[a.id] == [100.0, 50.0, 100.0, 0.0]
    assert usage[b.id] == [100.0, 50.0, 200.0, 200.0]
    assert [tier.cost for tier in result.tiers] == pytest.approx([43.60, 33.40, 154.80, 109.20])
    assert result.base_total == pytest.approx(341.00)


def test_equal_split_when_half_capacity_fits_smaller_demand() -> None:
    bands = [make_band(1, 50, 0.2), make_band(51, None, 0.5)]
    small = make_tenant("small", 30)
    large = make_tenant("large", 100)

    result = allocate_usage(bands, [small, large])

    usage = _usage_by_tenant(result)
    assert usage[small.id][0] == 25.0
    assert usage[large.id][0] == 25.0


def test_smaller_tenant_fully_served_before_larger_gets_more() -> None:
    bands = [make_band(1, 80, 0.2), make_band(81, None, 0.5)]
    small = make_tenant("small", 30)
    large = make_tenant("large", 100)

    result = allocate_usage(bands, [small, large])

    usage = _usage_by_tenant(result)
    assert usage[small.id] == [30.0, 0.0]
    assert usage[large.id] == [50.0, 50.0]


def test_conservation_with_unbounded_top_band() -> None:
    bands = list(default_schedule())
    tenants = [make_tenant(consumption=value) for value in (0, 12.5, 333.3333, 1000, 47, 0.0001)]

    result = allocate_usage(bands, tenants)

    assert result.total_usage == pytest.approx(sum(t.consumption for t in tenants))
    for tenant, alloc in zip(tenants, result.tenants):
        assert sum(item.usage for item in alloc.breakdown) == pytest.approx(tenant.consumption)
    for band, tier in zip(bands, result.tiers):
        assert tier.usage <= band.capacity + 1e-9


def test_zero_tenants_leave_every_tier_empty() -> None:
    result = allocate_usage(list(default_schedule()), [])

    assert [tier.usage for tier in result.tiers] == [0.0, 0.0, 0.0, 0.0]
    assert result.tenants == []
    assert result.base_total == 0.0


def test_zero_consumption_tenant_takes_nothing() -> None:
    idle = make_tenant("idle", 0)
    busy = make_tenant("busy", 150)

    result = allocate_usage(list(default_schedule()), [idle, busy])

    usage = _usage_by_tenant(result)
    assert usage[idle.id] == [0.0, 0.0, 0.0, 0.0]
    assert usage[busy.id] == [150.0, 0.0, 0.0, 0.0]


def test_demand_beyond_finite_schedule_is_left_unallocated() -> None:
    bands = [make_band(1, 100, 0.1)]
    tenants = [make_tenant(consumption=80), make_tenant(consumption=80)]

    result = allocate_usage(bands, tenants)

    assert result.tiers[0].usage == 100.0
    assert [t.breakdown[0].usage for t in result.tenants] == [50.0, 50.0]


def test_gapped_schedule_only_consumes_band_capacity() -> None:
    bands = [make_band(1, 10, 1.0), make_band(500, 509, 2.0), make_band(900, None, 3.0)]
    tenants = [make_tenant(consumption=25)]

    result = allocate_usage(bands, tenants)

    assert [tier.usage for tier in result.tiers] == [10.0, 10.0, 5.0]
    assert result.base_total == pytest.approx(10 + 20 + 15)


def test_inverted_band_has_no_capacity() -> None:
    bands = [make_band(100, 50, 1.0), make_band(101, None, 2.0)]

    result = allocate_usage(bands, [make_tenant(consumption=40)])

    assert result.tiers[0].usage == 0.0
    assert result.tiers[1].usage == 40.0
    assert math.isinf(bands[1].capacity)


def test_repeated_runs_are_identical_and_leave_inputs_untouched() -> None:
    bands = list(default_schedule())
    tenants = [make_tenant("A", 250), make_tenant("B", 550), make_tenant("C", 75.25)]

    first = allocate_usage(bands, tenants)
    second = allocate_usage(bands, tenants)

    assert first == second
    assert [t.consumption for t in tenants] == [250.0, 550.0, 75.25]
