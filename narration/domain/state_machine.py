"""
State Machine

Shared transition validation for Job, ContentItem and AudioChunk.
Each entity declares its adjacency table once; every status change
goes through the same check.
"""

from enum import Enum
from types import MappingProxyType
from typing import Dict, FrozenSet, Generic, Iterable, List, Mapping, Tuple, TypeVar

from .errors import InvalidTransitionError

S = TypeVar("S", bound=Enum)


class StateMachine(Generic[S]):
    """
    Immutable transition table for one status enum.

    Attributes:
        name: Entity name used in error messages
    """

    def __init__(self, name: str, table: Dict[S, Iterable[S]]):
        self.name = name
        self._table: Mapping[S, FrozenSet[S]] = MappingProxyType(
            {status: frozenset(targets) for status, targets in table.items()}
        )

    def allowed_from(self, status: S) -> FrozenSet[S]:
        """Return the statuses reachable from ``status`` in one step."""
        return self._table.get(status, frozenset())

    def can_transition(self, from_status: S, to_status: S) -> bool:
        return to_status in self.allowed_from(from_status)

    def assert_transition(self, from_status: S, to_status: S) -> None:
        """
        Validate a transition.

        Raises:
            InvalidTransitionError: If ``to_status`` is not reachable
        """
        if not self.can_transition(from_status, to_status):
            raise InvalidTransitionError(self.name, from_status, to_status)

    def is_terminal(self, status: S) -> bool:
        return not self.allowed_from(status)

    def statuses(self) -> List[S]:
        return list(self._table.keys())

    def edges(self) -> List[Tuple[S, S]]:
        """All legal (from, to) pairs."""
        return [(src, dst) for src, targets in self._table.items() for dst in targets]
