import math

from billsplit.api.tiers import Finite, TierSchedule, Unbounded, coerce_number, default_schedule, make_band


def _ranges(schedule: TierSchedule) -> list[tuple[float, float | None]]:
    return [(b.start, None if isinstance(b.end, Unbounded) else b.end.value) for b in schedule]


def test_default_schedule_layout() -> None:
    schedule = default_schedule()

    assert _ranges(schedule) == [(1, 200), (201, 300), (301, 600), (601, None)]
    assert [b.rate for b in schedule] == [0.218, 0.334, 0.516, 0.546]
    assert [b.capacity for b in schedule][:3] == [200, 100, 300]
    assert math.isinf(schedule.bands[-1].capacity)
    assert len({b.id for b in schedule}) == 4


def test_default_schedules_get_fresh_ids() -> None:
    first = {b.id for b in default_schedule()}
    second = {b.id for b in default_schedule()}

    assert first.isdisjoint(second)


def test_add_band_goes_directly_below_open_band() -> None:
    schedule = default_schedule()

    added = schedule.add_band()
    again = schedule.add_band()

    assert _ranges(schedule) == [(1, 200), (201, 300), (301, 600), (601, 700), (701, 800), (801, None)]
    assert schedule.bands[3].id == added.id
    assert schedule.bands[4].id == again.id
    assert added.rate == 0.3
    assert schedule.bands[-1].is_unbounded


def test_add_band_without_open_band_appends() -> None:
    schedule = TierSchedule(bands=[make_band(1, 50, 0.1)])

    added = schedule.add_band()

    assert (added.start, added.end) == (51, Finite(150))
    assert schedule.bands[-1].id == added.id


def test_update_band_resorts_by_start() -> None:
    schedule = default_schedule()
    first_id = schedule.bands[0].id

    schedule.update_band(first_id, "from", "450")

    assert [b.start for b in schedule] == [201, 301, 450, 601]
    assert schedule.bands[2].id == first_id


def test_update_band_coerces_bad_values_to_zero() -> None:
    schedule = default_schedule()
    band_id = schedule.bands[1].id

    schedule.update_band(band_id, "rate", "abc")
    schedule.update_band(band_id, "to", "")

    band = schedule.get(band_id)
    assert band.rate == 0.0
    assert band.end == Finite(0.0)
    assert band.capacity == 0.0


def test_update_band_does_not_close_open_band() -> None:
    schedule = default_schedule()
    top = schedule.bands[-1]

    schedule.update_band(top.id, "to", 9999)
    schedule.update_band(top.id, "rate", 0.6)

    assert schedule.get(top.id).is_unbounded
    assert schedule.get(top.id).rate == 0.6


def test_update_band_ignores_unknown_targets() -> None:
    schedule = default_schedule()
    before = list(schedule.bands)

    schedule.update_band("missing", "rate", 1)
    schedule.update_band(before[0].id, "colour", 1)

    assert schedule.bands == before


def test_overlapping_edits_are_accepted() -> None:
    schedule = default_schedule()

    schedule.update_band(schedule.bands[1].id, "from", 150)

    assert _ranges(schedule)[:2] == [(1, 200), (150, 300)]


def test_remove_band_keeps_open_band() -> None:
    schedule = default_schedule()
    middle = schedule.bands[1].id
    top = schedule.bands[-1].id

    assert schedule.remove_band(middle) is True
    assert schedule.remove_band(top) is False
    assert schedule.remove_band("missing") is False
    assert len(schedule) == 3


def test_coerce_number() -> None:
    assert coerce_number("12.5") == 12.5
    assert coerce_number(" ") == 0.0
    assert coerce_number(None) == 0.0
    assert coerce_number("nan") == 0.0
    assert coerce_number(float("inf")) == 0.0
    assert coerce_number(7) == 7.0
    assert coerce_number(10 ** 400) == 0.0
    assert coerce_number("9" * 400) == 0.0
