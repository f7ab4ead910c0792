"""
session.py — Interactive Schedule Session

Holds the current ScheduleData for one operator and owns its persistence:

  boot()            load from the repository (master → mirror → legacy → empty)
  apply(data)       replace the whole schedule value, then request a save
  request_save()    mark dirty; the save happens on flush() once the
                    debounce window (save_debounce_seconds) has passed
  flush(force)      run the pending save now if due (or forced)
  force_reload()    discard in-memory state, re-read the store
  reset_database()  confirmed wipe, saved with the empty-overwrite flag

File reads (import, restore) are the only step that may finish after other
edits. begin_file_read() hands out a ReadTicket; complete_import /
complete_restore reject a ticket superseded by a later read and resolve
against the data current at completion, not at start.

Save status:  idle → saving → saved | error | protected
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from hemo_scheduler.config import resolve_settings
from hemo_scheduler.errors import ConfirmationRequiredError, StaleReadError
from hemo_scheduler.importer import ImportResult, resolve_import
from hemo_scheduler.models import DayGroup, ScheduleData, create_empty_schedule
from hemo_scheduler.persistence import (
    SOURCE_LEGACY,
    SOURCE_MIRROR,
    SaveResult,
    ScheduleRepository,
    parse_backup,
)

logger = logging.getLogger(__name__)


class SaveStatus(Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"
    PROTECTED = "protected"


@dataclass(frozen=True)
class ReadTicket:
    active_group: DayGroup
    sequence: int


class ScheduleSession:

    def __init__(
        self,
        repository: ScheduleRepository,
        settings: Optional[Dict[str, Any]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.repository = repository
        self.settings = resolve_settings(settings)
        self.clock = clock
        self.data: ScheduleData = create_empty_schedule()
        self.active_group: DayGroup = DayGroup.MWF
        self.save_status = SaveStatus.IDLE
        self.last_message: Optional[str] = None
        self.last_error: Optional[str] = None
        self.ready = False
        self._pending_since: Optional[float] = None
        self._read_sequence = 0

    # ----- lifecycle ------------------------------------------------------

    def boot(self) -> str:
        data, source = self.repository.load()
        self.data = data
        self.ready = True
        self._pending_since = None
        if source == SOURCE_LEGACY:
            self.last_message = "Banco Atualizado (Migração)"
            self._save(allow_empty=False)
        elif source == SOURCE_MIRROR:
            self.last_message = "Dados Recuperados"
        logger.info(f"Session booted from {source}: {data.record_count()} records")
        return source

    def set_active_group(self, group: Any) -> DayGroup:
        self.active_group = DayGroup.parse(group)
        return self.active_group

    def apply(self, new_data: ScheduleData) -> None:
        self.data = new_data
        self.request_save()

    # ----- autosave -------------------------------------------------------

    @property
    def has_pending_save(self) -> bool:
        return self._pending_since is not None

    def request_save(self) -> None:
        if not self.ready:
            return
        self._pending_since = self.clock()
        self.save_status = SaveStatus.SAVING

    def flush(self, force: bool = False) -> Optional[SaveResult]:
        """Perform the pending save if the debounce window has elapsed."""
        if self._pending_since is None:
            return None
        elapsed = self.clock() - self._pending_since
        if not force and elapsed < self.settings["save_debounce_seconds"]:
            return None
        return self._save(allow_empty=False)

    def _save(self, allow_empty: bool) -> SaveResult:
        result = self.repository.save(self.data, allow_empty_overwrite=allow_empty)
        self._pending_since = None
        if result.success:
            self.save_status = SaveStatus.SAVED
            self.last_error = None
        elif result.protected:
            self.save_status = SaveStatus.PROTECTED
            self.last_error = result.error
            logger.warning("Autosave blocked by data protection")
        else:
            self.save_status = SaveStatus.ERROR
            self.last_error = result.error
        return result

    def mark_idle(self) -> None:
        if self.save_status is SaveStatus.SAVED:
            self.save_status = SaveStatus.IDLE

    # ----- explicit operations --------------------------------------------

    def force_reload(self) -> ScheduleData:
        self.data, _source = self.repository.load()
        self._pending_since = None
        self.save_status = SaveStatus.IDLE
        self.last_message = "Dados recarregados do banco de dados local."
        return self.data

    def reset_database(self, confirmed: bool = False) -> SaveResult:
        if not confirmed:
            raise ConfirmationRequiredError(
                "Tem certeza que deseja APAGAR TODOS os pacientes? Confirme para continuar."
            )
        empty = create_empty_schedule()
        result = self.repository.save(empty, allow_empty_overwrite=True)
        if result.success:
            self.data = empty
            self._pending_since = None
            self.save_status = SaveStatus.SAVED
            self.last_message = "Banco Zerado"
            logger.warning("Database reset by operator")
        else:
            self.save_status = SaveStatus.ERROR
            self.last_error = result.error
        return result

    # ----- file reads -----------------------------------------------------

    def begin_file_read(self) -> ReadTicket:
        self._read_sequence += 1
        return ReadTicket(active_group=self.active_group, sequence=self._read_sequence)

    def _check_ticket(self, ticket: ReadTicket) -> DayGroup:
        if ticket.sequence != self._read_sequence:
            raise StaleReadError(
                f"Leitura #{ticket.sequence} foi substituída pela leitura #{self._read_sequence}."
            )
        return DayGroup.parse(ticket.active_group)

    def complete_import(self, ticket: ReadTicket, rows: List[Dict[str, Any]]) -> ImportResult:
        group = self._check_ticket(ticket)
        result = resolve_import(rows, self.data, group)
        self.apply(result.data)
        self.last_message = result.message
        return result

    def complete_restore(self, ticket: ReadTicket, payload: Any, confirmed: bool = False) -> ScheduleData:
        self._check_ticket(ticket)
        restored = parse_backup(payload)
        if not confirmed:
            raise ConfirmationRequiredError(
                "Isso substituirá TODOS os dados atuais pelos do backup. Confirme para continuar."
            )
        self.apply(restored)
        self.last_message = "Backup restaurado com sucesso!"
        logger.info(f"Backup restored: {restored.record_count()} records")
        return restored
