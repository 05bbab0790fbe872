"""Every provider status maps to exactly one canonical status; unknown ones fail safe."""

import pytest
from checkout.gateway import klarna_adapter, stripe_adapter, vipps_adapter
from checkout.gateway.port import CanonicalStatus, PaymentProvider, map_status

STRIPE_EXPECTED = {
    "requires_payment_method": CanonicalStatus.PENDING,
    "requires_confirmation": CanonicalStatus.PENDING,
    "requires_action": CanonicalStatus.PENDING,
    "processing": CanonicalStatus.PENDING,
    "requires_capture": CanonicalStatus.AUTHORIZED,
    "succeeded": CanonicalStatus.COMPLETED,
    "canceled": CanonicalStatus.CANCELLED,
}

VIPPS_EXPECTED = {
    "INITIATE": CanonicalStatus.PENDING,
    "RESERVE": CanonicalStatus.AUTHORIZED,
    "SALE": CanonicalStatus.COMPLETED,
    "CAPTURE": CanonicalStatus.COMPLETED,
    "CANCEL": CanonicalStatus.CANCELLED,
    "VOID": CanonicalStatus.CANCELLED,
    "EXPIRED": CanonicalStatus.EXPIRED,
    "REJECTED": CanonicalStatus.FAILED,
}

KLARNA_EXPECTED = {
    "checkout_incomplete": CanonicalStatus.PENDING,
    "checkout_complete": CanonicalStatus.AUTHORIZED,
    "AUTHORIZED": CanonicalStatus.AUTHORIZED,
    "PART_CAPTURED": CanonicalStatus.AUTHORIZED,
    "CAPTURED": CanonicalStatus.COMPLETED,
    "CANCELLED": CanonicalStatus.CANCELLED,
    "CLOSED": CanonicalStatus.CANCELLED,
    "EXPIRED": CanonicalStatus.EXPIRED,
}


@pytest.mark.parametrize("native,expected", STRIPE_EXPECTED.items())
def test_stripe_statuses(native, expected):
    assert map_status(PaymentProvider.STRIPE, stripe_adapter.STATUS_MAP, native) == expected


@pytest.mark.parametrize("native,expected", VIPPS_EXPECTED.items())
def test_vipps_statuses(native, expected):
    assert map_status(PaymentProvider.VIPPS, vipps_adapter.STATUS_MAP, native) == expected


@pytest.mark.parametrize("native,expected", KLARNA_EXPECTED.items())
def test_klarna_statuses(native, expected):
    assert map_status(PaymentProvider.KLARNA, klarna_adapter.STATUS_MAP, native) == expected


@pytest.mark.parametrize(
    "provider,mapping",
    [
        (PaymentProvider.STRIPE, stripe_adapter.STATUS_MAP),
        (PaymentProvider.VIPPS, vipps_adapter.STATUS_MAP),
        (PaymentProvider.KLARNA, klarna_adapter.STATUS_MAP),
    ],
)
def test_unknown_status_is_treated_as_failed(provider, mapping):
    assert map_status(provider, mapping, "something_new") == CanonicalStatus.FAILED
    assert map_status(provider, mapping, None) == CanonicalStatus.FAILED


def test_every_mapped_value_is_canonical():
    for mapping in (stripe_adapter.STATUS_MAP, vipps_adapter.STATUS_MAP, klarna_adapter.STATUS_MAP):
        assert all(isinstance(status, CanonicalStatus) for status in mapping.values())


def test_stripe_events_cover_intent_lifecycle():
    assert stripe_adapter.EVENT_STATUS_MAP["payment_intent.succeeded"] == CanonicalStatus.COMPLETED
    assert stripe_adapter.EVENT_STATUS_MAP["payment_intent.payment_failed"] == CanonicalStatus.FAILED
    assert "charge.refunded" not in stripe_adapter.EVENT_STATUS_MAP


class TestProviderParsing:
    def test_parses_case_insensitively(self):
        assert PaymentProvider.parse("Stripe") == PaymentProvider.STRIPE

    def test_unknown_provider_is_a_validation_error(self):
        from protean.exceptions import ValidationError

        with pytest.raises(ValidationError):
            PaymentProvider.parse("paypal")
