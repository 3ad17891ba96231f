"""
Turns raw player status samples into watch-record updates and events.

Everything here is pure: the caller passes in the previous record, the
per-session progress flags and the clock, and gets back new values. The
watch count is only ever incremented here, once per monitoring session.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Union

from mediatracker.domain import Completed, PlayerState, ProgressUpdated, Sample, WatchRecord

COMPLETION_THRESHOLD = 0.8

Event = Union[ProgressUpdated, Completed]


@dataclass(frozen=True)
class SessionProgress:
    """What has already happened within the current monitoring session."""
    counted: bool = False  # watch_count was incremented for this session
    completed: bool = False  # Completed was emitted for this session


@dataclass
class Reconciliation:
    record: Optional[WatchRecord]
    progress: SessionProgress
    events: List[Event] = field(default_factory=list)
    ended: bool = False


def to_percentage(ratio: float) -> int:
    """Converts a position ratio to a whole percentage, rounding halves up."""
    ratio = min(max(ratio, 0.0), 1.0)
    return int(math.floor(ratio * 100 + 0.5))


def is_past_threshold(ratio: float, threshold: float = COMPLETION_THRESHOLD) -> bool:
    return ratio > threshold


def reconcile(previous: Optional[WatchRecord], sample: Sample, progress: SessionProgress,
              path: str, now: Optional[datetime] = None,
              threshold: float = COMPLETION_THRESHOLD) -> Reconciliation:
    """
    Applies one status sample to the record for `path`.

    A stopped player or a non-positive position ends the session: the record
    is returned untouched and no events are produced.
    """
    if sample.state == PlayerState.STOPPED or sample.position <= 0:
        return Reconciliation(record=previous, progress=progress, ended=True)

    now = now or datetime.now()
    record = previous.copy() if previous else WatchRecord.new(path, now=now)
    percentage = to_percentage(sample.position)

    record.last_position = max(sample.time, 0.0)
    # A zero/unknown length must not erase a known duration
    record.total_duration = max(record.total_duration, sample.length, 0.0)
    record.watched_percentage = float(percentage)
    record.watched_date = now

    counted = progress.counted
    if not counted:
        record.watch_count += 1
        counted = True

    events: List[Event] = [
        ProgressUpdated(file_path=path, position=record.last_position, length=record.total_duration,
                        percentage=percentage)
    ]

    completed = progress.completed
    if not completed and is_past_threshold(sample.position, threshold):
        events.append(Completed(file_path=path))
        completed = True

    return Reconciliation(
        record=record,
        progress=SessionProgress(counted=counted, completed=completed),
        events=events,
    )
