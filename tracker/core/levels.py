"""
Level Engine: decaying caffeine level over an arbitrary time window.

Decay model (first-order elimination, base-2 form):
  contribution(e, t) = amount_e * 0.5 ^ ((t - t_e) / t_half)    for t >= t_e
                     = 0                                          for t <  t_e
  level(t) = SUM_e contribution(e, t)

Sampling:
  1. spacing    = (end - start) / RANGE_RESOLUTION
  2. resolution = largest ladder entry <= spacing ("snap down")
  3. grid       = start truncated to resolution, stepping until >= end
  4. knots      = for each event in [start, end]: t_e and t_e - KNOT_OFFSET
  5. evaluate level at grid + knots, stable sort by timestamp

Knots pin the step at each dose; a coarse grid alone smears it.
Duplicate timestamps (grid point == knot) are kept.
"""

from datetime import datetime, timedelta, timezone
from operator import attrgetter
from typing import Iterable, Iterator, Optional, Sequence

from tracker.config import (
    HALF_LIFE_HOURS,
    KNOT_OFFSET_SECONDS,
    MAX_SAMPLES,
    RANGE_RESOLUTION,
)
from tracker.core.models import ConsumptionEvent, TimeSample

HALF_LIFE = timedelta(hours=HALF_LIFE_HOURS)
KNOT_OFFSET = timedelta(seconds=KNOT_OFFSET_SECONDS)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

RESOLUTION_LADDER: tuple[timedelta, ...] = (
    timedelta(seconds=1),
    timedelta(seconds=5),
    timedelta(seconds=10),
    timedelta(seconds=30),
    timedelta(minutes=1),
    timedelta(minutes=5),
    timedelta(minutes=10),
    timedelta(minutes=30),
    timedelta(hours=1),
    timedelta(hours=2),
    timedelta(hours=6),
    timedelta(hours=12),
    timedelta(days=1),
)


# ── Errors ───────────────────────────────────────────────────────────

class LevelSeriesError(ValueError):
    """Base class for level computation failures."""


class InvalidRange(LevelSeriesError):
    """Requested window is empty or inverted (end <= start)."""


class InvalidResolution(LevelSeriesError):
    """Grid step is zero or negative."""


class SeriesTooLarge(LevelSeriesError):
    """Uniform grid exceeds the configured sample cap."""


# ── Resolution selection ─────────────────────────────────────────────

def select_resolution(spacing: timedelta) -> timedelta:
    """
    Snap a target spacing down to the resolution ladder.
    Below the smallest entry -> smallest; above the largest -> largest.
    """
    chosen = RESOLUTION_LADDER[0]
    for snap in RESOLUTION_LADDER:
        if snap > spacing:
            break
        chosen = snap
    return chosen


# ── Time grid ────────────────────────────────────────────────────────

def truncate(t: datetime, resolution: timedelta) -> datetime:
    """Round t down to a multiple of resolution since the Unix epoch."""
    epoch = _EPOCH if t.tzinfo is not None else _EPOCH.replace(tzinfo=None)
    return t - (t - epoch) % resolution


def generate_grid(start: datetime, end: datetime,
                  resolution: timedelta) -> Iterator[datetime]:
    """
    Yield aligned timestamps from truncate(start) while before end,
    then one final point at or after end.
    """
    if resolution <= timedelta(0):
        raise InvalidResolution(f"resolution must be positive, got {resolution}")
    return _grid(truncate(start, resolution), end, resolution)


def _grid(t: datetime, end: datetime, resolution: timedelta) -> Iterator[datetime]:
    while t < end:
        yield t
        t += resolution
    yield t


# ── Decay ────────────────────────────────────────────────────────────

def decay_contribution(event: ConsumptionEvent, t: datetime,
                       half_life: timedelta = HALF_LIFE) -> float:
    """Remaining amount of one dose at time t. Future doses contribute 0."""
    if t < event.timestamp:
        return 0.0
    hours = (t - event.timestamp).total_seconds() / 3600.0
    half_life_hours = half_life.total_seconds() / 3600.0
    return event.amount * 0.5 ** (hours / half_life_hours)


def level_at(t: datetime, events: Iterable[ConsumptionEvent],
             half_life: timedelta = HALF_LIFE) -> float:
    """Sum of decay contributions of all events at time t."""
    if half_life <= timedelta(0):
        raise ValueError(f"half_life must be positive, got {half_life}")
    total = 0.0
    for event in events:
        total += decay_contribution(event, t, half_life)
    return total


# ── Series assembly ──────────────────────────────────────────────────

def build_series(
    start: datetime,
    end: datetime,
    events: Sequence[ConsumptionEvent],
    half_life: timedelta = HALF_LIFE,
    knot_offset: timedelta = KNOT_OFFSET,
    max_samples: Optional[int] = MAX_SAMPLES,
    range_resolution: int = RANGE_RESOLUTION,
) -> list[TimeSample]:
    """
    Build the level series for [start, end].

    `events` should already include the lookback window before `start`;
    events outside [start, end] still contribute decay but get no knots.
    `max_samples` caps the uniform grid (0 or None = uncapped).
    """
    if end <= start:
        raise InvalidRange(f"end ({end.isoformat()}) must be after start ({start.isoformat()})")

    resolution = select_resolution((end - start) / range_resolution)

    timestamps: list[datetime] = []
    for t in generate_grid(start, end, resolution):
        timestamps.append(t)
        if max_samples and len(timestamps) > max_samples:
            raise SeriesTooLarge(
                f"grid at {resolution} exceeds {max_samples} samples "
                f"for {end - start}"
            )

    for event in events:
        if start <= event.timestamp <= end:
            timestamps.append(event.timestamp)
            timestamps.append(event.timestamp - knot_offset)

    samples = [TimeSample(t, level_at(t, events, half_life)) for t in timestamps]
    samples.sort(key=attrgetter("timestamp"))
    return samples
