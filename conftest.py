"""Pytest configuration.

Ensures that the repository root is importable so that ``focuswarden`` and
the helper modules under ``scripts`` resolve when tests are executed without
an editable install.
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
