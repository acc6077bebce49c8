"""Unit-test conftest: no unit test may open a database connection.

The result cache, usage recorder and document store all reach Postgres
through ``src.storage``. Every accessor there is replaced with one that
raises, so a test that forgot to inject an in-memory store or a mocked
session fails loudly instead of hanging on a connection attempt.
"""

from __future__ import annotations

import pytest

import src.storage as _storage_mod

GUARDED = ("get_engine", "get_session_factory", "get_session")


def _guard(name: str):
    def guarded(*args, **kwargs):
        raise RuntimeError(
            f"Unit test called src.storage.{name}(). "
            "Inject an in-memory store or a mocked session instead."
        )

    return guarded


def pytest_configure() -> None:
    """Guard storage before test modules import it."""
    _storage_mod._engine = None  # type: ignore[attr-defined]
    _storage_mod._session_factory = None  # type: ignore[attr-defined]
    for name in GUARDED:
        setattr(_storage_mod, name, _guard(name))


@pytest.fixture(autouse=True)
def _isolate_db(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset the shared engine and re-install the guards for each test."""
    monkeypatch.setattr(_storage_mod, "_engine", None)
    monkeypatch.setattr(_storage_mod, "_session_factory", None)
    for name in GUARDED:
        monkeypatch.setattr(_storage_mod, name, _guard(name))
