# conftest.py — opiform_viz package
#
# Puts the repository root on sys.path so "from opiform_viz... import ..."
# resolves when pytest runs from a source checkout without an install.
#
# Usage:
#   pytest opiform_viz/tests/ -v
#   pytest opiform_viz/tests/test_observables.py -v

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))
