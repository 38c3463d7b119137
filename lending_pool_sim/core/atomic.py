#!/usr/bin/env python3
"""
Atomic call journal

A pool call either completes or leaves no trace. Each stateful participant
(pool, tokens, swap venue) captures a snapshot on entry; if an exception
escapes the block every participant is restored, newest first, and the
exception keeps propagating. Journals nest, so a re-entrant call rolls back
only its own effects unless the outer call fails too.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, List, Tuple

logger = logging.getLogger(__name__)


class Snapshottable(ABC):
    """State holder that can be captured and restored by the journal"""

    @abstractmethod
    def snapshot(self) -> Any:
        """Return an independent copy of all mutable state"""

    @abstractmethod
    def restore(self, state: Any) -> None:
        """Reinstate state previously returned by snapshot()"""


@contextmanager
def atomic(participants: Iterable[Snapshottable]) -> Iterator[None]:
    """Run the enclosed block as one all-or-nothing transition"""
    saved: List[Tuple[Snapshottable, Any]] = []
    seen = set()
    for participant in participants:
        if id(participant) in seen:
            continue
        seen.add(id(participant))
        saved.append((participant, participant.snapshot()))

    try:
        yield
    except BaseException as exc:
        for participant, state in reversed(saved):
            participant.restore(state)
        logger.debug(
            "Call rolled back",
            extra={
                "event": "atomic.rollback",
                "participants": len(saved),
                "error": type(exc).__name__,
            }
        )
        raise
