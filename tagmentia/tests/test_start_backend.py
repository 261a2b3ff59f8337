from unittest.mock import patch

from tagmentia import start_backend


def test_main_runs_uvicorn_with_configured_address(monkeypatch):
    monkeypatch.setattr(start_backend.settings, "HOST", "127.0.0.1")
    monkeypatch.setattr(start_backend.settings, "PORT", 9100)

    with patch.object(start_backend.uvicorn, "run") as run:
        assert start_backend.main() == 0

    run.assert_called_once()
    args, kwargs = run.call_args
    assert args == ("tagmentia.main:app",)
    assert kwargs["host"] == "127.0.0.1"
    assert kwargs["port"] == 9100
    assert kwargs["reload"] is False


def test_main_exits_cleanly_on_interrupt():
    with patch.object(start_backend.uvicorn, "run", side_effect=KeyboardInterrupt):
        assert start_backend.main() == 0
