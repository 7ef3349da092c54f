"""
Root pytest configuration.

Keeps the project root on the Python path so tests can import app.py,
models.py and the devinettes package without an install.
"""

from __future__ import annotations

import os
import sys

PROJECT_ROOT = os.path.dirname(__file__)
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)
