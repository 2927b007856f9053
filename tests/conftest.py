"""Pytest configuration ensuring the `src` directory is on sys.path.

Allows `import tank_model...` without installing the package.
"""
import os
import sys

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
SRC = os.path.join(ROOT, 'src')
if SRC not in sys.path:
    sys.path.insert(0, SRC)


@pytest.fixture
def storm_event():
    """Hourly rainfall (mm) of a small storm followed by a dry spell."""
    return [0.0, 2.0, 8.0, 25.0, 40.0, 18.0, 6.0, 1.0] + [0.0] * 40
