"""
phase.py - Stream Phase State Machine

Pure mapping from (current status, time, milestones) to the status a stream
is in at that time:

    now < bootstrapping_start            -> WAITING
    now < stream_start                   -> BOOTSTRAPPING
    now < stream_end                     -> ACTIVE
    otherwise                            -> ENDED

Terminal statuses (CANCELLED, FINALIZED_STREAMED, FINALIZED_REFUNDED) are
sticky: once entered they are returned unchanged whatever the time. Those
statuses are only entered by explicit operations (cancel, finalize), never by
the passage of time.
"""

from __future__ import annotations

from .core import StreamStatus, StreamTimes


def next_status(
    current: StreamStatus,
    now: int,
    bootstrapping_start: int,
    stream_start: int,
    stream_end: int,
) -> StreamStatus:
    """
    Status of a stream at time ``now``.

    Total and side-effect free: every input combination maps to a status.
    """
    if current.is_terminal():
        return current
    if now < bootstrapping_start:
        return StreamStatus.WAITING
    if now < stream_start:
        return StreamStatus.BOOTSTRAPPING
    if now < stream_end:
        return StreamStatus.ACTIVE
    return StreamStatus.ENDED


def status_at(current: StreamStatus, now: int, times: StreamTimes) -> StreamStatus:
    """next_status with the milestones taken from a StreamTimes."""
    return next_status(
        current, now, times.bootstrapping_start, times.stream_start, times.stream_end
    )
