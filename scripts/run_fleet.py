#!/usr/bin/env python3
"""Run the bless-fleet daemon from a source checkout.

Usage:
    python scripts/run_fleet.py --init config.json
    python scripts/run_fleet.py --init config.json --http-port 8790
"""

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from bless_fleet.daemon import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
