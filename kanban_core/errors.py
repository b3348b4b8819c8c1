"""
Error taxonomy for the board engine.

Every rejection is all-or-nothing: when one of these is raised (or returned
inside a MoveResult) no card, column or dependency edge has been touched.
"""
from typing import Iterable, List, Optional


class KanbanCoreError(Exception):
    """Base class for all engine errors."""
    pass


class ConfigError(KanbanCoreError):
    """Raised when configuration is invalid or unreadable."""
    pass


class InvalidState(KanbanCoreError):
    """Operation attempted outside its valid state-machine state."""
    pass


class NotFoundError(KanbanCoreError, KeyError):
    """A card or column id does not exist on the board."""

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"Unknown {kind}: {entity_id}")

    def __str__(self) -> str:
        return f"Unknown {self.kind}: {self.entity_id}"


class WipLimitExceeded(KanbanCoreError):
    """Hard WIP admission control rejected a cross-column move."""

    def __init__(self, column_id: str, card_id: str, wip_limit: int, card_count: int):
        self.column_id = column_id
        self.card_id = card_id
        self.wip_limit = wip_limit
        self.card_count = card_count
        super().__init__(
            f"Column '{column_id}' is at its hard WIP limit "
            f"({card_count}/{wip_limit}); card '{card_id}' rejected"
        )


class CycleError(KanbanCoreError):
    """Adding a dependency would close a cycle at target_id."""

    def __init__(self, target_id: str, from_id: Optional[str] = None):
        self.target_id = target_id
        self.from_id = from_id
        if from_id is not None:
            msg = (
                f"Cannot make '{target_id}' depend on '{from_id}': "
                f"would create a circular dependency"
            )
        else:
            msg = f"Circular dependency through '{target_id}'"
        super().__init__(msg)


class IntegrityViolation(KanbanCoreError):
    """An invariant was found false before a mutation was attempted."""

    def __init__(self, problems: Iterable[str]):
        self.problems: List[str] = list(problems)
        super().__init__("; ".join(self.problems) or "integrity violation")


class DependencyValidationError(KanbanCoreError):
    """Dependency set references missing cards or contains cycles."""

    def __init__(self, message: str, kind: str, card_ids: Iterable[str]):
        self.kind = kind  # "missing" | "circular"
        self.card_ids = list(card_ids)
        super().__init__(message)


class BoardFileError(KanbanCoreError):
    """Board file is missing, unparsable or malformed."""
    pass


class RenumberRequired(KanbanCoreError):
    """A drop position only exists after the column is renumbered."""

    def __init__(self, allocation):
        self.allocation = allocation  # positioning.Allocation with the renumber plan
        super().__init__(
            f"Column must be renumbered before inserting at index {allocation.index}"
        )
