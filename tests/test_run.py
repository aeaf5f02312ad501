import importlib
import sys
import threading
from unittest.mock import Mock

import requests

HEALTH_URL = "http://localhost:8000/api/health"


def test_import_in_prod_starts_no_thread(monkeypatch):
    monkeypatch.setenv("ENV", "prod")
    sys.modules.pop("run", None)
    before = threading.active_count()

    importlib.import_module("run")

    assert threading.active_count() == before


def test_keep_alive_pings_until_stopped(monkeypatch):
    import run

    get = Mock(return_value=Mock(status_code=200))
    monkeypatch.setattr(run.requests, "get", get)
    stop = threading.Event()
    stop.set()

    run.keep_alive(HEALTH_URL, interval=0, stop=stop)

    get.assert_called_once_with(HEALTH_URL, timeout=10)


def test_keep_alive_survives_failed_ping(monkeypatch):
    import run

    monkeypatch.setattr(run.requests, "get", Mock(side_effect=requests.ConnectionError("down")))
    stop = threading.Event()
    stop.set()

    run.keep_alive(HEALTH_URL, interval=0, stop=stop)


def test_main_starts_pinger_only_in_prod(monkeypatch):
    import run

    serve = Mock()
    thread = Mock()
    monkeypatch.setattr(run.uvicorn, "run", serve)
    monkeypatch.setattr(run.threading, "Thread", thread)
    monkeypatch.delenv("PORT", raising=False)

    monkeypatch.setenv("ENV", "local")
    run.main()
    thread.assert_not_called()
    assert serve.call_args.kwargs["reload"] is True

    monkeypatch.setenv("ENV", "prod")
    monkeypatch.delenv("KEEP_ALIVE_URL", raising=False)
    run.main()
    thread.assert_called_once_with(target=run.keep_alive, args=(HEALTH_URL,), daemon=True)
    assert serve.call_args.kwargs["host"] == "0.0.0.0"
