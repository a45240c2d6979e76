"""
Pytest configuration for gcp-nonlinear tests.

Automatically adds src/ to sys.path so tests can import gcp_nonlinear
without PYTHONPATH.
"""

import sys
import os

import numpy as np
import pytest

repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
src_path = os.path.join(repo_root, 'src')

if src_path not in sys.path:
    sys.path.insert(0, src_path)


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
