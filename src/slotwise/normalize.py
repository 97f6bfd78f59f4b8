from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from .models import Event, FreeGap, MergedBlock


def _effective_end(event: Event) -> datetime:
    # A negative-duration event is a zero-width busy point at its start.
    return max(event.end, event.start)


def _clip(event: Event, day_start: datetime, day_end: datetime) -> Tuple[datetime, datetime]:
    start = max(event.start, day_start)
    end = min(_effective_end(event), day_end)
    return start, max(start, end)


def merge_day_blocks(day_start: datetime, day_end: datetime, events: Iterable[Event]) -> List[MergedBlock]:
    """
    Collapse the events overlapping ``[day_start, day_end)`` into sorted, disjoint busy blocks.

    Each block remembers where the traveler arrives (the first event folded into it)
    and where they leave from (the event whose end reaches the block end last).
    Events without coordinates still take part in merging.
    """
    clipped = []
    for event in events:
        if not (_effective_end(event) > day_start and event.start < day_end):
            continue
        start, end = _clip(event, day_start, day_end)
        clipped.append((start, end, event))
    clipped.sort(key=lambda item: item[0])

    blocks: List[MergedBlock] = []
    current: Optional[MergedBlock] = None
    for start, end, event in clipped:
        if current is None or start > current.end:
            if current is not None:
                blocks.append(current)
            current = MergedBlock(
                start=start,
                end=end,
                entry_lat=event.lat,
                entry_long=event.long,
                exit_lat=event.lat,
                exit_long=event.long,
            )
            continue

        new_end = max(current.end, end)
        if end >= new_end:
            current = replace(current, end=new_end, exit_lat=event.lat, exit_long=event.long)
        else:
            current = replace(current, end=new_end)

    if current is not None:
        blocks.append(current)
    return blocks


def find_free_gaps(day_start: datetime, day_end: datetime, blocks: List[MergedBlock]) -> List[FreeGap]:
    """Return the complement of ``blocks`` within the window, with neighbouring blocks attached."""
    if not blocks:
        return [FreeGap(start=day_start, end=day_end)]

    gaps: List[FreeGap] = []
    first = blocks[0]
    if first.start > day_start:
        gaps.append(FreeGap(start=day_start, end=first.start, next_block=first))

    for prev, nxt in zip(blocks, blocks[1:]):
        gaps.append(FreeGap(start=prev.end, end=nxt.start, prev_block=prev, next_block=nxt))

    last = blocks[-1]
    if last.end < day_end:
        gaps.append(FreeGap(start=last.end, end=day_end, prev_block=last))
    return gaps
