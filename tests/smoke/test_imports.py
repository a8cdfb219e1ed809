"""Smoke tests for import stability and side-effect free modules."""

import importlib

import pytest

MODULES = [
    "draft_engine",
    "draft_engine.config",
    "draft_engine.draft_logging",
    "draft_engine.errors",
    "draft_engine.models",
    "draft_engine.draft_state",
    "draft_engine.eligibility",
    "draft_engine.selector",
    "draft_engine.resilience",
    "draft_engine.broadcast",
    "draft_engine.store",
    "draft_engine.db",
    "draft_engine.picks",
    "draft_engine.executor",
    "draft_engine.timer",
    "draft_engine.cli",
]


@pytest.mark.parametrize("name", MODULES)
def test_module_imports(name):
    assert importlib.import_module(name)


def test_importing_db_does_not_create_engine():
    db = importlib.import_module("draft_engine.db")
    assert db._engine is None


def test_package_metadata():
    import draft_engine

    assert draft_engine.__version__
    assert draft_engine.get_settings().is_test()


def test_configure_logging_is_idempotent():
    import structlog

    from draft_engine.draft_logging import configure_logging, get_logger

    try:
        configure_logging(force=True)
        configure_logging()
        get_logger("smoke").info("smoke.logged", check=True)
    finally:
        structlog.reset_defaults()
