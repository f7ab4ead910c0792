"""
errors.py — Exceptions raised by the scheduling core.

Analysis, matrix and simulator code never raises these; they degrade to empty
results. Only operations that must abort (import without a name column,
corrupt backup, conflicting write) raise.
"""

from typing import Any, Optional


class SchedulerError(Exception):
    """Base class for every scheduling error."""


class MissingColumnError(SchedulerError):
    """Import table has no recognisable name/patient column."""


class ImportFailedError(SchedulerError):
    """Import produced zero placed rows."""


class InvalidBackupError(SchedulerError):
    """Backup file is not valid schedule JSON."""


class ConfirmationRequiredError(SchedulerError):
    """Destructive operation attempted without explicit confirmation."""


class UnknownChairError(SchedulerError):
    def __init__(self, chair_number: str):
        self.chair_number = chair_number
        super().__init__(f"Poltrona {chair_number} não existe na sala")


class SlotConflictError(SchedulerError):
    """Target chair/turn is already held by another patient."""

    def __init__(self, day_group: str, chair_number: str, turn: int, occupant: Any):
        self.day_group = day_group
        self.chair_number = chair_number
        self.turn = turn
        self.occupant = occupant
        super().__init__(
            f"A Poltrona {chair_number} no Turno {turn} ({day_group}) "
            f"já está ocupada por {getattr(occupant, 'name', occupant)}."
        )


class ChairFullError(SchedulerError):
    def __init__(self, day_group: str, chair_number: str):
        self.day_group = day_group
        self.chair_number = chair_number
        super().__init__(
            f"A poltrona {chair_number} ({day_group}) está lotada (máximo 3 turnos)."
        )


class OverlapError(SchedulerError):
    """Session time range overlaps another session on the same chair."""

    def __init__(self, day_group: str, chair_number: str, occupant: Any, detail: Optional[str] = None):
        self.day_group = day_group
        self.chair_number = chair_number
        self.occupant = occupant
        name = getattr(occupant, "name", occupant)
        message = f"Horário conflita com {name} na poltrona {chair_number} ({day_group})"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class StaleReadError(SchedulerError):
    """A file read finished after a newer read was started; its result is discarded."""
