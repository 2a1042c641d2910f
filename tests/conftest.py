import importlib.util
from pathlib import Path

import matplotlib
import pytest

matplotlib.use("Agg")

ROOT = Path(__file__).parent.parent
DATA_DIR = Path(__file__).parent / "data"
TOOL_PATH = ROOT / "memory" / "tools" / "memtrace-view.py"


@pytest.fixture
def sample_log():
    return DATA_DIR / "memtrace.log"


@pytest.fixture(scope="session")
def memtrace_view():
    spec = importlib.util.spec_from_file_location("memtrace_view", TOOL_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module
