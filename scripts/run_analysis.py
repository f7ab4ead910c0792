#!/usr/bin/env python3
"""
Capacity analysis of the stored schedule (same as `hemo-scheduler analyze`)

Usage:
  python scripts/run_analysis.py analyze --report
  python scripts/run_analysis.py simulate --group MWF --duration 04:00

Outputs to outputs/ directory.
"""

import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from hemo_scheduler.cli import main

if __name__ == "__main__":
    main()
