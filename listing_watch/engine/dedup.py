"""Split freshly extracted listings into new and already-known tokens."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import AbstractSet, Iterable

from ..records import ListingRecord


@dataclass
class Partition:
    new: list[ListingRecord] = field(default_factory=list)
    known: list[ListingRecord] = field(default_factory=list)
    # later copies of a token already listed on the same page
    repeated: int = 0


def partition(records: Iterable[ListingRecord], seen_tokens: AbstractSet[str]) -> Partition:
    """Records whose token is not in ``seen_tokens`` are new; extractor order is kept.

    Only the first copy of a token repeated within one page is kept, so the
    token sets of ``new`` and ``known`` stay disjoint and ``known`` only holds
    seen tokens.
    """

    result = Partition()
    listed: set[str] = set()
    for record in records:
        if record.token in listed:
            result.repeated += 1
            continue
        listed.add(record.token)
        if record.token in seen_tokens:
            result.known.append(record)
        else:
            result.new.append(record)
    return result


__all__ = ["Partition", "partition"]
