import pytest

from app.db import bootstrap


def _raise_error(message: str):
    raise RuntimeError(message)


def test_runtime_schema_bootstrap_raises_on_validation_failure(monkeypatch):
    monkeypatch.setattr(bootstrap.Base.metadata, "create_all", lambda bind: None)
    monkeypatch.setattr(
        bootstrap,
        "_assert_required_columns",
        lambda: _raise_error("missing required schema"),
    )

    with pytest.raises(RuntimeError, match="Runtime schema compatibility bootstrap failed"):
        bootstrap.ensure_runtime_schema_compatibility()


def test_missing_schema_items_reports_absent_columns(monkeypatch):
    monkeypatch.setitem(bootstrap.REQUIRED_COLUMNS, "events", {"id", "recurrence_token"})
    bootstrap.Base.metadata.create_all(bind=bootstrap.engine)

    missing_tables, missing_columns = bootstrap.missing_schema_items()

    assert missing_tables == []
    assert missing_columns == {"events": ["recurrence_token"]}
