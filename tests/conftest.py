import os
import sys

import pytest


PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC_DIR = os.path.join(PROJECT_ROOT, "src")

if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)


@pytest.fixture
def store(tmp_path):  # noqa: ANN001, ANN201
    """每个用例独立的 JSON 状态文件（tmp_path/state.json）。"""
    from acn.state.json_store import JsonStateStore

    return JsonStateStore(tmp_path / "state.json")
