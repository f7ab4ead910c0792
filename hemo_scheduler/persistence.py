"""
persistence.py — Schedule Repository (JSON files)

Storage layout under the store directory:

  master.json   source of truth
  mirror.json   copy written on every successful save; repairs the master
  shadow.json   last NON-EMPTY save (never overwritten with an empty schedule)
  meta.json     {"last_saved", "record_count", "version"}

Load order:
  1. master   → source "MASTER"
  2. mirror   → source "MIRROR"   (master rewritten from it)
  3. legacy   → source "LEGACY_MIGRATION" (first older file with records;
                 migrated into master + mirror immediately)
  4. nothing  → source "EMPTY"

Anti-wipe protection: a save that would replace a non-empty master with an
empty schedule is refused unless the caller passes allow_empty_overwrite
(explicit reset). The decision lives in ProtectionPolicy so it can be tested
without touching the filesystem. A corrupt master never blocks a save.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from hemo_scheduler.config import DEFAULT_OUTPUT_DIR, DEFAULT_STORE_DIR
from hemo_scheduler.errors import InvalidBackupError
from hemo_scheduler.models import ScheduleData, create_empty_schedule, normalize_data
from hemo_scheduler.schedule_config import GROUP_MWF, GROUP_TTS, STORE_VERSION

logger = logging.getLogger(__name__)

SOURCE_MASTER = "MASTER"
SOURCE_MIRROR = "MIRROR"
SOURCE_LEGACY = "LEGACY_MIGRATION"
SOURCE_EMPTY = "EMPTY"

PROTECTION_MESSAGE = (
    "Proteção de Dados Ativada: O banco contém dados e não pode ser zerado automaticamente."
)


# ---------------------------------------------------------------------------
# Protection policy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SnapshotSummary:
    record_count: int

    @classmethod
    def of(cls, data: ScheduleData) -> "SnapshotSummary":
        return cls(record_count=data.record_count())


@dataclass(frozen=True)
class SaveDecision:
    allowed: bool
    reason: Optional[str] = None


class ProtectionPolicy:
    """Refuses to replace a non-empty schedule with an empty one."""

    def evaluate(
        self,
        previous: Optional[SnapshotSummary],
        next_summary: SnapshotSummary,
        allow_empty: bool = False,
    ) -> SaveDecision:
        if allow_empty or previous is None:
            return SaveDecision(allowed=True)
        if previous.record_count > 0 and next_summary.record_count == 0:
            return SaveDecision(
                allowed=False,
                reason=(
                    f"Tentativa de sobrescrever {previous.record_count} registros "
                    f"com base vazia bloqueada."
                ),
            )
        return SaveDecision(allowed=True)


@dataclass(frozen=True)
class SaveResult:
    success: bool
    protected: bool = False
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------

def _looks_like_schedule(raw: Any) -> bool:
    return isinstance(raw, dict) and (GROUP_MWF in raw or GROUP_TTS in raw)


def _read_json(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
    tmp.replace(path)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------

class ScheduleRepository:
    """Interface used by ScheduleSession; see JsonScheduleRepository."""

    def load(self) -> Tuple[ScheduleData, str]:
        raise NotImplementedError

    def save(self, data: ScheduleData, allow_empty_overwrite: bool = False) -> SaveResult:
        raise NotImplementedError

    def wipe(self) -> ScheduleData:
        raise NotImplementedError


class JsonScheduleRepository(ScheduleRepository):

    def __init__(
        self,
        store_dir: Optional[Path] = None,
        legacy_paths: Sequence[Path] = (),
        policy: Optional[ProtectionPolicy] = None,
    ):
        self.store_dir = Path(store_dir or DEFAULT_STORE_DIR)
        self.master_path = self.store_dir / "master.json"
        self.mirror_path = self.store_dir / "mirror.json"
        self.shadow_path = self.store_dir / "shadow.json"
        self.meta_path = self.store_dir / "meta.json"
        self.legacy_paths: List[Path] = [Path(p) for p in legacy_paths]
        self.policy = policy or ProtectionPolicy()

    # ----- load -----------------------------------------------------------

    def load(self) -> Tuple[ScheduleData, str]:
        if self.master_path.exists():
            try:
                raw = _read_json(self.master_path)
                if _looks_like_schedule(raw):
                    data = normalize_data(raw)
                    logger.info(f"Master loaded: {data.record_count()} records")
                    return data, SOURCE_MASTER
                logger.warning(f"Master file has no day-group keys: {self.master_path}")
            except (OSError, ValueError) as e:
                logger.warning(f"Master file unreadable, trying mirror: {e}")

        if self.mirror_path.exists():
            try:
                raw = _read_json(self.mirror_path)
                data = normalize_data(raw)
                _write_json(self.master_path, raw)
                logger.warning("Schedule recovered from mirror; master repaired")
                return data, SOURCE_MIRROR
            except (OSError, ValueError) as e:
                logger.warning(f"Mirror file unreadable: {e}")

        for legacy in self.legacy_paths:
            if not legacy.exists():
                continue
            try:
                data = normalize_data(_read_json(legacy))
            except (OSError, ValueError) as e:
                logger.warning(f"Could not migrate legacy file {legacy}: {e}")
                continue
            if data.record_count() > 0:
                payload = data.to_dict()
                _write_json(self.master_path, payload)
                _write_json(self.mirror_path, payload)
                logger.info(f"Migrated {data.record_count()} records from {legacy}")
                return data, SOURCE_LEGACY

        logger.info("New store, starting from an empty schedule")
        return create_empty_schedule(), SOURCE_EMPTY

    # ----- save -----------------------------------------------------------

    def _stored_summary(self) -> Optional[SnapshotSummary]:
        if not self.master_path.exists():
            return None
        try:
            return SnapshotSummary.of(normalize_data(_read_json(self.master_path)))
        except (OSError, ValueError):
            logger.warning("Current master is corrupt, allowing overwrite")
            return None

    def save(self, data: ScheduleData, allow_empty_overwrite: bool = False) -> SaveResult:
        summary = SnapshotSummary.of(data)
        decision = self.policy.evaluate(self._stored_summary(), summary, allow_empty_overwrite)
        if not decision.allowed:
            logger.error(f"Save refused by data protection: {decision.reason}")
            return SaveResult(success=False, protected=True, error=PROTECTION_MESSAGE)

        payload = data.to_dict()
        try:
            _write_json(self.master_path, payload)
            _write_json(self.mirror_path, payload)
            if summary.record_count > 0:
                _write_json(self.shadow_path, payload)
            _write_json(self.meta_path, {
                "last_saved":   datetime.now().isoformat(timespec="seconds"),
                "record_count": summary.record_count,
                "version":      STORE_VERSION,
            })
        except OSError as e:
            logger.error(f"Save failed: {e}")
            return SaveResult(success=False, error=str(e))

        logger.info(f"Saved {summary.record_count} records → {self.master_path}")
        return SaveResult(success=True)

    def wipe(self) -> ScheduleData:
        """Empty master and mirror; the shadow copy is kept for manual rollback."""
        empty = create_empty_schedule()
        payload = empty.to_dict()
        _write_json(self.master_path, payload)
        _write_json(self.mirror_path, payload)
        logger.warning(f"Store wiped: {self.store_dir}")
        return empty

    def meta(self) -> Dict[str, Any]:
        if not self.meta_path.exists():
            return {}
        try:
            return _read_json(self.meta_path)
        except (OSError, ValueError):
            return {}


# ---------------------------------------------------------------------------
# Backup files
# ---------------------------------------------------------------------------

def backup_filename(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"HEMO_BACKUP_{now.strftime('%Y-%m-%d')}_{now.strftime('%H-%M-%S')}.json"


def write_backup(
    data: ScheduleData,
    output_dir: Optional[Path] = None,
    now: Optional[datetime] = None,
) -> Path:
    """Write the full schedule as pretty JSON; returns the backup path."""
    out_dir = Path(output_dir or DEFAULT_OUTPUT_DIR)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / backup_filename(now)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data.to_dict(), f, indent=2, ensure_ascii=False)
    logger.info(f"Backup exported → {path}")
    return path


def parse_backup(payload: Any) -> ScheduleData:
    """Validate a decoded (or raw text) backup and normalise it."""
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError as e:
            raise InvalidBackupError("Arquivo inválido ou corrompido.") from e
    if not _looks_like_schedule(payload):
        raise InvalidBackupError("Arquivo inválido ou corrompido.")
    return normalize_data(payload)


def read_backup(path: Path) -> ScheduleData:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Backup file not found: {path}")
    with open(path, encoding="utf-8") as f:
        text = f.read()
    return parse_backup(text)
