"""Tests for the wallet adapter: token caching, request shape, webhook parsing."""

import hashlib
import hmac
import json
from datetime import UTC, datetime, timedelta
from unittest.mock import Mock

import pytest
import requests
from checkout.exceptions import ProviderError, SignatureError
from checkout.gateway.port import CanonicalStatus
from checkout.gateway.vipps_adapter import VippsGateway


def _response(payload, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.content = json.dumps(payload).encode()
    response.text = json.dumps(payload)
    response.json.return_value = payload
    return response


class Clock:
    def __init__(self):
        self.now = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture()
def clock():
    return Clock()


@pytest.fixture()
def session():
    return Mock(spec=requests.Session)


@pytest.fixture()
def gateway(session, clock):
    return VippsGateway(
        base_url="https://apitest.vipps.no",
        client_id="client",
        client_secret="secret",
        subscription_key="sub-key",
        merchant_serial_number="123456",
        webhook_secret="whsec",
        redirect_url="http://localhost:3000/payment/success",
        callback_prefix="http://localhost:8000/payments/webhooks/vipps",
        session=session,
        clock=clock,
    )


def _token(value="tok-1", expires_in=3600):
    return _response({"access_token": value, "expires_in": expires_in})


def _token_calls(session):
    return [c for c in session.request.call_args_list if c.args[1].endswith("/accesstoken/get")]


class TestAccessToken:
    def test_token_is_cached(self, gateway, session):
        session.request.return_value = _token()
        assert gateway.access_token() == "tok-1"
        assert gateway.access_token() == "tok-1"
        assert len(_token_calls(session)) == 1

    def test_token_refreshed_five_minutes_before_expiry(self, gateway, session, clock):
        session.request.side_effect = [_token("tok-1", 3600), _token("tok-2", 3600)]
        assert gateway.access_token() == "tok-1"

        clock.advance(minutes=54)
        assert gateway.access_token() == "tok-1"

        clock.advance(minutes=1, seconds=1)
        assert gateway.access_token() == "tok-2"
        assert len(_token_calls(session)) == 2

    def test_token_owned_by_instance(self, gateway, session, clock):
        session.request.return_value = _token()
        gateway.access_token()
        other = VippsGateway(
            base_url="https://apitest.vipps.no",
            client_id="client",
            client_secret="secret",
            subscription_key="sub-key",
            merchant_serial_number="123456",
            webhook_secret="whsec",
            redirect_url="r",
            callback_prefix="c",
            session=session,
            clock=clock,
        )
        other.access_token()
        assert len(_token_calls(session)) == 2

    def test_missing_credentials(self, session, clock):
        gateway = VippsGateway(
            base_url="https://apitest.vipps.no",
            client_id="",
            client_secret="",
            subscription_key="",
            merchant_serial_number="",
            webhook_secret="",
            redirect_url="r",
            callback_prefix="c",
            session=session,
            clock=clock,
        )
        with pytest.raises(ProviderError):
            gateway.access_token()
        session.request.assert_not_called()


class TestCreatePayment:
    def test_sends_minor_units_and_request_id(self, gateway, session):
        session.request.side_effect = [_token(), _response({"orderId": "HS-1-1", "url": "https://vipps/redirect"})]

        result = gateway.create_payment(amount=699.0, currency="nok", order_reference="HS-1-1", customer_email=None)

        assert result.checkout_url == "https://vipps/redirect"
        assert result.transaction_id == "HS-1-1"
        assert result.status == CanonicalStatus.PENDING

        method, url = session.request.call_args.args
        kwargs = session.request.call_args.kwargs
        assert (method, url) == ("POST", "https://apitest.vipps.no/ecomm/v2/payments")
        assert kwargs["json"]["transaction"]["amount"] == 69900
        assert kwargs["json"]["transaction"]["currency"] == "NOK"
        assert kwargs["headers"]["Authorization"] == "Bearer tok-1"
        assert kwargs["headers"]["X-Request-Id"]

    def test_http_error_becomes_provider_error(self, gateway, session):
        session.request.side_effect = [_token(), _response({"error": "bad"}, status_code=502)]
        with pytest.raises(ProviderError) as exc:
            gateway.create_payment(amount=10.0, currency="nok", order_reference="HS-1-1", customer_email=None)
        assert exc.value.status_code == 502
        assert "bad" in exc.value.raw

    def test_network_error_becomes_provider_error(self, gateway, session):
        session.request.side_effect = [_token(), requests.ConnectionError("down")]
        with pytest.raises(ProviderError):
            gateway.create_payment(amount=10.0, currency="nok", order_reference="HS-1-1", customer_email=None)


class TestConfirmPayment:
    def test_reads_status_from_details(self, gateway, session):
        session.request.side_effect = [
            _token(),
            _response({"orderId": "HS-1-1", "transactionInfo": {"status": "RESERVE", "amount": 69900}}),
        ]
        result = gateway.confirm_payment("HS-1-1")
        assert result.status == CanonicalStatus.AUTHORIZED
        assert result.amount == 699.0

    def test_falls_back_to_history(self, gateway, session):
        session.request.side_effect = [
            _token(),
            _response({"orderId": "HS-1-1", "transactionLogHistory": [{"operation": "SALE", "amount": 100}]}),
        ]
        assert gateway.confirm_payment("HS-1-1").status == CanonicalStatus.COMPLETED

    def test_reports_configured_currency(self, session, clock):
        gateway = VippsGateway(
            base_url="https://apitest.vipps.no",
            client_id="client",
            client_secret="secret",
            subscription_key="sub-key",
            merchant_serial_number="123456",
            webhook_secret="whsec",
            redirect_url="http://localhost:3000/payment/success",
            callback_prefix="http://localhost:8000/payments/webhooks/vipps",
            currency="DKK",
            session=session,
            clock=clock,
        )
        session.request.side_effect = [
            _token(),
            _response({"orderId": "HS-1-1", "transactionInfo": {"status": "RESERVE", "amount": 69900}}),
        ]
        assert gateway.confirm_payment("HS-1-1").currency == "dkk"


class TestCapturePayment:
    def test_keeps_payment_currency(self, gateway, session):
        session.request.side_effect = [
            _token(),
            _response({"orderId": "HS-1-1", "transactionInfo": {"status": "Captured", "amount": 69900}}),
        ]
        result = gateway.capture_payment("HS-1-1", 699.0, "SEK")
        assert result.status == CanonicalStatus.COMPLETED
        assert result.currency == "sek"
        assert result.amount == 699.0


class TestWebhook:
    def _signed(self, payload, secret="whsec"):
        body = json.dumps(payload).encode()
        return body, {"x-webhook-signature": hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()}

    def test_parses_signed_callback(self, gateway):
        body, headers = self._signed(
            {"orderId": "HS-1-1", "transactionInfo": {"status": "SALE", "amount": 69900, "timeStamp": "t1"}}
        )
        event = gateway.parse_webhook(body, headers)
        assert event.transaction_id == "HS-1-1"
        assert event.status == CanonicalStatus.COMPLETED
        assert event.event_id == "HS-1-1:SALE:t1"

    def test_rejects_bad_signature(self, gateway):
        body, headers = self._signed({"orderId": "HS-1-1"}, secret="wrong")
        with pytest.raises(SignatureError):
            gateway.parse_webhook(body, headers)
