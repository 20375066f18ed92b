from pathlib import Path

import pytest


REPO_ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture(autouse=True)
def _run_from_repo_root(monkeypatch):
    # Fixtures are referenced as examples/<file>, relative to the repo root.
    monkeypatch.chdir(REPO_ROOT)
