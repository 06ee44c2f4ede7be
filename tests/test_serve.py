import logging

from kpi_dashboard import serve
from kpi_dashboard.config import settings


def test_main_configures_logging_and_runs_uvicorn(monkeypatch) -> None:
    logging_calls = []
    run_calls = []
    monkeypatch.setattr(serve.logging, "basicConfig", lambda **kwargs: logging_calls.append(kwargs))
    monkeypatch.setattr(serve.uvicorn, "run", lambda app, **kwargs: run_calls.append((app, kwargs)))

    serve.main()

    assert logging_calls == [{"level": settings.log_level.upper(), "format": serve.LOG_FORMAT}]
    assert run_calls == [
        (
            "kpi_dashboard.main:app",
            {
                "host": settings.host,
                "port": settings.port,
                "log_level": settings.log_level.lower(),
            },
        )
    ]
