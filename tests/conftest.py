"""Pytest configuration for all tests."""

import sys
import os

# Make the repository root importable so tests can import ``src.tagbot``
root_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if root_dir not in sys.path:
    sys.path.insert(0, root_dir)
