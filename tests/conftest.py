import os
import sys


def pytest_configure():
    # Ensure the repository root is importable for `stateserver.*` / `stateclient.*`
    root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    if root not in sys.path:
        sys.path.insert(0, root)
