"""
schedule_config.py — Room, Grid & Analysis Configuration

Fixed description of the dialysis room and the defaults of every tunable
analysis policy. Per-deployment overrides live in
config/scheduler_settings.json (see config.py).

ROOM
────
  20 chairs: "01".."08", "Leito 09" (the bed), "10".."20".
  Each chair holds up to 3 turns per day-group.
  Unknown chair on import → UNASSIGNED_CHAIR ("99"), never placed.

DAY-GROUPS
──────────
  SEG/QUA/SEX  (Mon / Wed / Fri)
  TER/QUI/SÁB  (Tue / Thu / Sat)
  A 'Diário' patient is written into both groups with the same id.

OPERATING WINDOW / GRID
───────────────────────
  05:30 → 21:00, 30-minute rows.
  Every session is followed by a 90-minute setup (cleaning) block.
  Standard session 4h; minimum cleaning gap between sessions 30 min.

TURN BOUNDARIES (import)
────────────────────────
  start < 09:00         → turn 1
  09:00 ≤ start < 14:00 → turn 2   (09:00 so that 09:30 starts land in turn 2)
  start ≥ 14:00         → turn 3

SHIFT WINDOWS (simulator scoring)
─────────────────────────────────
  Morning   05:30 ± 30 min  → 100  Perfeita
  Midday    10:30 ± 60 min  →  95  Quase perfeita
  Afternoon 15:30 ± 60 min  →  85  Boa
  Other                     →  70  Ajustável

CAPACITY / CANDIDATES
─────────────────────
  effective_capacity_ratio: 0.85 (earlier deployment) or 1.0 (later one).
  candidate_strategy:       "late_start" | "anticipation".
"""

from typing import Any, Dict, List, Tuple

# ---------------------------------------------------------------------------
# Operating window & grid
# ---------------------------------------------------------------------------
OPERATING_HOURS_START = 5.5    # 05:30
OPERATING_HOURS_END = 21.0     # 21:00
SLOT_INTERVAL = 30
SETUP_DURATION_MINUTES = 90

STANDARD_SESSION_MINUTES = 240
MIN_CLEANING_MINUTES = 30

OPEN_MINUTES = int(OPERATING_HOURS_START * 60)    # 330
CLOSE_MINUTES = int(OPERATING_HOURS_END * 60)     # 1260

# ---------------------------------------------------------------------------
# Room
# ---------------------------------------------------------------------------
BED_CHAIR = "Leito 09"
UNASSIGNED_CHAIR = "99"

ALL_CHAIRS: Tuple[str, ...] = (
    "01", "02", "03", "04", "05", "06", "07", "08", BED_CHAIR, "10",
    "11", "12", "13", "14", "15", "16", "17", "18", "19", "20",
)

TURNS: Tuple[int, ...] = (1, 2, 3)

# ---------------------------------------------------------------------------
# Week
# ---------------------------------------------------------------------------
GROUP_MWF = "SEG/QUA/SEX"
GROUP_TTS = "TER/QUI/SÁB"

ALL_DAYS: Tuple[str, ...] = ("SEG", "TER", "QUA", "QUI", "SEX", "SÁB")

DAY_GROUP_DAYS: Dict[str, Tuple[str, ...]] = {
    GROUP_MWF: ("SEG", "QUA", "SEX"),
    GROUP_TTS: ("TER", "QUI", "SÁB"),
}

# Python weekday() → day-group (Sunday has no sessions)
WEEKDAY_TO_GROUP: Dict[int, str] = {
    0: GROUP_MWF, 2: GROUP_MWF, 4: GROUP_MWF,
    1: GROUP_TTS, 3: GROUP_TTS, 5: GROUP_TTS,
}

# ---------------------------------------------------------------------------
# Patient enumerations
# ---------------------------------------------------------------------------
TREATMENTS: Tuple[str, ...] = ("HD", "HDF", "DP", "Conservador")
FREQUENCIES: Tuple[str, ...] = ("2x", "3x", "Diário", "Extra")

DEFAULT_TREATMENT = "HD"
DEFAULT_FREQUENCY = "3x"
DAILY_FREQUENCY = "Diário"
DEFAULT_START_TIME = "05:30"
DEFAULT_DURATION = "04:00"

# ---------------------------------------------------------------------------
# Turn boundaries
# ---------------------------------------------------------------------------
IMPORT_TURN2_START = 9 * 60     # 09:00
IMPORT_TURN3_START = 14 * 60    # 14:00

# Turn inferred from a clicked/suggested grid time
GRID_TURN2_START = 10 * 60      # 10:00
GRID_TURN3_START = 15 * 60      # 15:00

# ---------------------------------------------------------------------------
# Simulator shift windows
# ---------------------------------------------------------------------------
SHIFT_WINDOWS: List[Dict[str, Any]] = [
    {"turn": 1, "center": 330, "tolerance": 30, "score": 100, "quality": "Perfeita"},
    {"turn": 2, "center": 630, "tolerance": 60, "score": 95,  "quality": "Quase perfeita"},
    {"turn": 3, "center": 930, "tolerance": 60, "score": 85,  "quality": "Boa"},
]
FALLBACK_SCORE = 70
FALLBACK_QUALITY = "Ajustável"

# ---------------------------------------------------------------------------
# Analysis policy defaults
# ---------------------------------------------------------------------------
EFFECTIVE_CAPACITY_RATIO = 0.85
CANDIDATE_STRATEGIES: Tuple[str, ...] = ("late_start", "anticipation")
CANDIDATE_STRATEGY = "late_start"
LATE_START_THRESHOLD = 6 * 60          # first patient at/after 06:00
ANTICIPATION_THRESHOLD = 13 * 60       # late-shift patients from 13:00

# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------
SAVE_DEBOUNCE_SECONDS = 0.5
STORE_VERSION = "10.0"

# ---------------------------------------------------------------------------
# Import header synonyms (matched after normalize + strip non-alnum)
# ---------------------------------------------------------------------------
IMPORT_HEADER_SYNONYMS: Dict[str, List[str]] = {
    "name":      ["NOME", "PACIENTE", "NOMES", "NAME", "PATIENT"],
    "chair":     ["POLTRONA", "CADEIRA", "LOCAL", "POLT", "NR", "LEITO", "CHAIR", "BED"],
    "time":      ["HORARIO", "HORA", "INICIO", "H.INICIO", "START", "HOUR"],
    "days":      ["DIAS", "ESCALA", "FREQ", "SEMANA", "DAYS", "WEEK"],
    "treatment": ["TIPO", "TRATAMENTO", "TERAPIA", "TREATMENT", "THERAPY", "MODALITY"],
    "duration":  ["TEMPO", "DURACAO", "SESSAO", "DURATION", "LENGTH"],
}
