"""Lifecycle of discovered code patterns.

Functions sharing a structural fingerprint form a pattern instance that
downstream tools review. A pattern starts as ``discovered`` and is either
``approved`` or ``ignored``; an approved pattern may later split off a
``variant`` when a divergent but related instance shows up. Nothing else
moves.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from reachgraph.errors import InvalidTransitionError
from reachgraph.graph.models import FunctionNode

logger = logging.getLogger(__name__)


class PatternStatus(Enum):
    DISCOVERED = "discovered"
    APPROVED = "approved"
    IGNORED = "ignored"
    VARIANT = "variant"


TRANSITIONS: dict[PatternStatus, frozenset[PatternStatus]] = {
    PatternStatus.DISCOVERED: frozenset({PatternStatus.APPROVED, PatternStatus.IGNORED}),
    PatternStatus.APPROVED: frozenset({PatternStatus.VARIANT}),
    PatternStatus.IGNORED: frozenset(),
    PatternStatus.VARIANT: frozenset(),
}


@dataclass(frozen=True)
class Transition:
    """One recorded status change."""

    from_status: PatternStatus
    to_status: PatternStatus
    reason: str
    at: str


@dataclass
class PatternInstance:
    """A group of structurally identical functions and its review status."""

    pattern_id: str
    fingerprint: str
    members: list[str] = field(default_factory=list)
    status: PatternStatus = PatternStatus.DISCOVERED
    history: list[Transition] = field(default_factory=list)

    def can_transition(self, new_status: PatternStatus) -> bool:
        return new_status in TRANSITIONS[self.status]

    def transition(self, new_status: PatternStatus, reason: str = "") -> None:
        """Move to a new status and record it.

        Raises:
            InvalidTransitionError: If the move is not allowed from the
                current status.
        """
        if not self.can_transition(new_status):
            raise InvalidTransitionError(
                f"pattern {self.pattern_id} cannot move from "
                f"{self.status.value} to {new_status.value}"
            )
        self.history.append(
            Transition(
                from_status=self.status,
                to_status=new_status,
                reason=reason,
                at=datetime.now(timezone.utc).isoformat(),
            )
        )
        logger.debug(f"Pattern {self.pattern_id}: {self.status.value} -> {new_status.value}")
        self.status = new_status

    def approve(self, reason: str = "") -> None:
        self.transition(PatternStatus.APPROVED, reason)

    def ignore(self, reason: str = "") -> None:
        self.transition(PatternStatus.IGNORED, reason)

    def mark_variant(self, reason: str = "") -> None:
        self.transition(PatternStatus.VARIANT, reason)


def group_by_fingerprint(
    nodes: Iterable[FunctionNode],
    min_size: int = 2,
) -> list[PatternInstance]:
    """Discover pattern instances among function nodes.

    Module pseudo functions and nodes without a fingerprint are ignored.

    Args:
        nodes: Candidate function nodes.
        min_size: Smallest group reported as a pattern.

    Returns:
        Newly discovered instances, largest group first, then by fingerprint.
    """
    groups: dict[str, list[str]] = {}
    for node in nodes:
        if node.is_module or not node.structural_fingerprint:
            continue
        groups.setdefault(node.structural_fingerprint, []).append(node.id)

    instances = [
        PatternInstance(
            pattern_id=f"pattern-{fingerprint[:12]}",
            fingerprint=fingerprint,
            members=sorted(members),
        )
        for fingerprint, members in groups.items()
        if len(members) >= min_size
    ]
    instances.sort(key=lambda p: (-len(p.members), p.fingerprint))
    return instances
