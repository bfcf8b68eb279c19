"""Tests for webhook_service.main entry point."""

from __future__ import annotations

from unittest.mock import patch


def test_main_calls_uvicorn_run(monkeypatch) -> None:
    """main() delegates to uvicorn.run with the configured host and port."""
    monkeypatch.setenv("WEBHOOKS_SERVER__PORT", "9090")
    with (
        patch("webhook_service.main.uvicorn.run") as mock_run,
        patch("webhook_service.main.logging.basicConfig") as mock_logging,
    ):
        from webhook_service.main import main

        main()
        mock_run.assert_called_once()
        mock_logging.assert_called_once()
        call_kwargs = mock_run.call_args
        assert call_kwargs[0][0] == "webhook_service.api.app:create_app"
        assert call_kwargs[1]["factory"] is True
        assert call_kwargs[1]["port"] == 9090
        assert call_kwargs[1]["reload"] is False
