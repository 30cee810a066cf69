from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Union


logger = logging.getLogger(__name__)

NEW_BAND_RATE = 0.3
NEW_BAND_WIDTH = 100


@dataclass(frozen=True)
class Finite:
    value: float


@dataclass(frozen=True)
class Unbounded:
    pass


UpperBound = Union[Finite, Unbounded]


def new_id() -> str:
    return uuid.uuid4().hex[:12]


def coerce_number(value: Any) -> float:
    """Blank, non-numeric and non-finite input all read as 0."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return 0.0
    else:
        raw = str(value or "").strip()
        if not raw:
            return 0.0
        try:
            number = float(raw)
        except ValueError:
            return 0.0
    if not math.isfinite(number):
        return 0.0
    return number


@dataclass(frozen=True)
class TierBand:
    id: str
    start: float
    end: UpperBound
    rate: float

    @property
    def is_unbounded(self) -> bool:
        return isinstance(self.end, Unbounded)

    @property
    def capacity(self) -> float:
        if isinstance(self.end, Unbounded):
            return math.inf
        return max(0.0, self.end.value - self.start + 1)


def make_band(start: float, end: float | None, rate: float, band_id: str | None = None) -> TierBand:
    bound: UpperBound = Unbounded() if end is None else Finite(float(end))
    return TierBand(id=band_id or new_id(), start=float(start), end=bound, rate=float(rate))


@dataclass
class TierSchedule:
    bands: list[TierBand] = field(default_factory=list)

    def __iter__(self):
        return iter(self.bands)

    def __len__(self) -> int:
        return len(self.bands)

    def get(self, band_id: str) -> TierBand | None:
        return next((band for band in self.bands if band.id == band_id), None)

    def _sort(self) -> None:
        # sorted() is stable, so equal starts keep insertion order
        self.bands = sorted(self.bands, key=lambda band: band.start)

    def add_band(self) -> TierBand:
        """Insert a finite band right below the open-ended top band.

        The new band takes over the first NEW_BAND_WIDTH units of the top
        band, whose start moves up accordingly. Without a top band the new
        band is appended after the last one.
        """
        terminal = next((band for band in self.bands if band.is_unbounded), None)
        if terminal is not None:
            start = terminal.start
        elif self.bands and isinstance(self.bands[-1].end, Finite):
            start = self.bands[-1].end.value + 1
        else:
            start = 1.0

        band = make_band(start, start + NEW_BAND_WIDTH - 1, NEW_BAND_RATE)
        bands = [b for b in self.bands if b is not terminal] + [band]
        if terminal is not None:
            bands.append(replace(terminal, start=start + NEW_BAND_WIDTH))
        self.bands = bands
        self._sort()
        return band

    def update_band(self, band_id: str, field_name: str, value: Any) -> None:
        band = self.get(band_id)
        if band is None:
            logger.debug("Ignoring update for unknown band id=%s", band_id)
            return

        number = coerce_number(value)
        if field_name == "from":
            updated = replace(band, start=number)
        elif field_name == "to":
            if band.is_unbounded:
                logger.debug("Upper bound of terminal band id=%s is not editable", band_id)
                return
            updated = replace(band, end=Finite(number))
        elif field_name == "rate":
            updated = replace(band, rate=number)
        else:
            logger.debug("Ignoring update for unknown band field=%s", field_name)
            return

        self.bands = [updated if b.id == band_id else b for b in self.bands]
        self._sort()

    def remove_band(self, band_id: str) -> bool:
        band = self.get(band_id)
        if band is None or band.is_unbounded:
            return False
        self.bands = [b for b in self.bands if b.id != band_id]
        return True


def default_schedule() -> TierSchedule:
    return TierSchedule(
        bands=[
            make_band(1, 200, 0.218),
            make_band(201, 300, 0.334),
            make_band(301, 600, 0.516),
            make_band(601, None, 0.546),
        ]
    )
