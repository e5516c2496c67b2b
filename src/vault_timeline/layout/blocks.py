"""
Block resolver: give each time bucket an end and nest overlapping buckets.

A bucket's natural end is its start plus the lengths of everything in it
(timed events and tasks with an explicit length). Later buckets that start
before that end are absorbed as nested sub-blocks. With ``extend_blocks``, a
zero-width bucket stretches to the next top-level bucket (or the window end).
"""

from typing import Dict, Iterable, List, Mapping, Union

from vault_timeline.models.timeline import Block, Bucket
from vault_timeline.utils.dates import add_minutes

Buckets = Union[Mapping[str, Bucket], Iterable[Bucket]]


def bucket_minutes(bucket: Bucket) -> int:
    """Total explicit length of a bucket in minutes."""
    total = sum(event.duration_minutes for event in bucket.events if not event.is_all_day)
    total += sum(task.length.minutes for task in bucket.tasks if task.length)
    return total


def natural_end(bucket: Bucket) -> str:
    minutes = bucket_minutes(bucket)
    return add_minutes(bucket.start_iso, minutes) if minutes > 0 else bucket.start_iso


def merge_buckets(buckets: Buckets) -> List[Bucket]:
    """
    Non-empty buckets in ascending start order, with buckets that share a
    start merged into one. The inputs are left untouched.
    """
    items = buckets.values() if isinstance(buckets, Mapping) else buckets
    merged: Dict[str, Bucket] = {}
    for bucket in items:
        if not len(bucket):
            continue
        target = merged.setdefault(bucket.start_iso, Bucket(start_iso=bucket.start_iso))
        target.merge(bucket)
    return [merged[start] for start in sorted(merged)]


def resolve_blocks(buckets: Buckets, window_end: str, extend_blocks: bool = False) -> List[Block]:
    """
    Turn time buckets into top-level blocks.

    Absorption is measured against the head bucket's natural end only, so a
    long nested item does not pull further buckets in. The block itself ends
    at the latest of its natural end, its nested items' ends and (when
    extending) the next top-level start. Nested blocks are resolved the same
    way, without extension, inside their parent.
    """
    ordered = merge_buckets(buckets)
    blocks: List[Block] = []
    i = 0
    while i < len(ordered):
        head = ordered[i]
        boundary = natural_end(head)

        j = i + 1
        while j < len(ordered) and ordered[j].start_iso < boundary:
            j += 1
        nested = ordered[i + 1:j]

        end = max([boundary] + [natural_end(child) for child in nested])
        if extend_blocks and boundary == head.start_iso:
            next_start = ordered[j].start_iso if j < len(ordered) else window_end
            end = max(end, next_start)

        blocks.append(Block(
            start_iso=head.start_iso,
            end_iso=end,
            tasks=list(head.tasks),
            events=list(head.events),
            blocks=resolve_blocks(nested, end, extend_blocks=False),
        ))
        i = j
    return blocks
