"""Shared pytest configuration: make the top-level packages importable."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))
