"""Tests for error classes and pre-defined error instances."""

from __future__ import annotations

import pytest

from webhook_service.errors import definitions as defs
from webhook_service.errors.webhook_errors import WebhookError

# ---------------------------------------------------------------------------
# WebhookError base class
# ---------------------------------------------------------------------------


class TestWebhookError:
    def test_default_attributes(self) -> None:
        err = WebhookError("something broke")
        assert str(err) == "something broke"
        assert err.message == "something broke"
        assert err.status_code == 500
        assert err.code == "webhook-error"

    def test_custom_attributes(self) -> None:
        err = WebhookError("bad request", status_code=400, code="bad-req")
        assert err.status_code == 400
        assert err.code == "bad-req"

    def test_is_exception(self) -> None:
        with pytest.raises(WebhookError, match="boom"):
            raise WebhookError("boom")


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------


_ALL = [getattr(defs, name) for name in dir(defs) if name.startswith("Err")]


class TestDefinitions:
    @pytest.mark.parametrize("err", _ALL, ids=lambda e: e.code)
    def test_shape(self, err: WebhookError) -> None:
        assert isinstance(err, WebhookError)
        assert err.message
        assert 400 <= err.status_code < 600

    def test_codes_unique(self) -> None:
        codes = [e.code for e in _ALL]
        assert len(codes) == len(set(codes))

    @pytest.mark.parametrize(
        ("err", "status"),
        [
            (defs.ErrMissingTenant, 400),
            (defs.ErrEndpointNotFound, 404),
            (defs.ErrDeliveryAlreadyDelivered, 409),
            (defs.ErrDeliveryInProgress, 409),
            (defs.ErrUnknownProvider, 404),
            (defs.ErrInvalidSignature, 401),
            (defs.ErrMalformedPayload, 400),
            (defs.ErrPayloadNotSerializable, 400),
            (defs.ErrEngineUnavailable, 503),
        ],
    )
    def test_status_codes(self, err: WebhookError, status: int) -> None:
        assert err.status_code == status
