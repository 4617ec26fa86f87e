import uvicorn

from childcare_auth import main


def test_run_serves_app_with_configured_host_and_port(monkeypatch):
    calls = []
    monkeypatch.setattr(uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))

    main.run()

    assert calls == [("childcare_auth.main:app", {
        "host": "127.0.0.1",
        "port": 8000,
        "reload": False,
        "log_level": "warning",
    })]
