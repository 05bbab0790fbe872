"""Payment provider registry.

One adapter instance per provider, built lazily from settings. Adapters own
their own credentials and token caches, so swapping one (``set_gateway``)
never leaks state into another.
"""

from checkout.config import get_settings
from checkout.gateway.klarna_adapter import KlarnaGateway
from checkout.gateway.port import PaymentGateway, PaymentProvider
from checkout.gateway.stripe_adapter import StripeGateway
from checkout.gateway.vipps_adapter import VippsGateway

_FACTORIES = {
    PaymentProvider.STRIPE: StripeGateway.from_settings,
    PaymentProvider.VIPPS: VippsGateway.from_settings,
    PaymentProvider.KLARNA: KlarnaGateway.from_settings,
}

_gateways: dict[PaymentProvider, PaymentGateway] = {}


def get_gateway(provider) -> PaymentGateway:
    """Return the adapter for ``provider`` (enum member or its string value)."""
    provider = PaymentProvider.parse(provider)
    if provider not in _gateways:
        _gateways[provider] = _FACTORIES[provider](get_settings())
    return _gateways[provider]


def set_gateway(provider, gateway: PaymentGateway) -> None:
    """Override the adapter used for a provider (useful for tests)."""
    _gateways[PaymentProvider.parse(provider)] = gateway


def reset_gateways() -> None:
    _gateways.clear()
