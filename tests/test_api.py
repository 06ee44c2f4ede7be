import logging
from unittest.mock import MagicMock

import pytest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from kpi_dashboard import main


def test_root_and_health(client) -> None:
    assert client.get("/").json() == {"status": "ok"}
    health = client.get("/health")
    assert health.status_code == 200
    assert health.json() == {"status": "healthy"}


def test_unknown_route_uses_error_shape(client) -> None:
    resp = client.get("/api/does-not-exist")
    assert resp.status_code == 404
    assert "error" in resp.json()


def test_validation_errors_return_400_with_error_list(client) -> None:
    resp = client.post("/api/kpis", json={"name": "Fire Oranı"})
    assert resp.status_code == 400
    errors = resp.json()["error"]
    assert isinstance(errors, list)
    missing = {tuple(err["loc"])[-1] for err in errors}
    assert {"category", "target", "period"} <= missing


def test_non_integer_path_id_is_rejected(client) -> None:
    resp = client.get("/api/kpis/abc")
    assert resp.status_code == 400


def test_database_failure_returns_generic_500(client, session_factory, caplog) -> None:
    with session_factory() as db:
        db.execute(text("DROP TABLE kpi"))
        db.commit()

    with caplog.at_level(logging.ERROR, logger="kpi_dashboard.main"):
        resp = client.get("/api/kpis")

    assert resp.status_code == 500
    assert resp.json() == {"error": "internal server error"}
    assert any("database error on GET /api/kpis" in r.getMessage() for r in caplog.records)


def test_get_db_rolls_back_on_database_error(monkeypatch) -> None:
    session = MagicMock()
    monkeypatch.setattr(main, "SessionLocal", lambda: session)

    dependency = main.get_db()
    assert next(dependency) is session
    with pytest.raises(SQLAlchemyError):
        dependency.throw(SQLAlchemyError("connection lost"))

    session.rollback.assert_called_once_with()
    session.close.assert_called_once_with()


def test_get_db_closes_without_rollback_on_success(monkeypatch) -> None:
    session = MagicMock()
    monkeypatch.setattr(main, "SessionLocal", lambda: session)

    dependency = main.get_db()
    next(dependency)
    with pytest.raises(StopIteration):
        next(dependency)

    session.rollback.assert_not_called()
    session.close.assert_called_once_with()
