"""
Factory for payment provider adapters.
"""
from __future__ import annotations

from typing import Callable

from application.ports.payment_provider import PaymentProvider
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings


logger = get_logger(__name__)


def _build_stripe(settings: PaymentSettings) -> PaymentProvider:
    from .stripe_client import StripeClient
    return StripeClient.from_settings(settings)


def _build_xendit(settings: PaymentSettings) -> PaymentProvider:
    from .xendit_client import XenditClient
    return XenditClient.from_settings(settings)


_BUILDERS: dict[str, tuple[Callable[[PaymentSettings], PaymentProvider], Callable[[PaymentSettings], str | None]]] = {
    "stripe": (_build_stripe, lambda s: s.stripe.secret_key),
    "xendit": (_build_xendit, lambda s: s.xendit.secret_key),
}


def build_providers(settings: PaymentSettings = payment_settings) -> list[PaymentProvider]:
    """Build configured providers in ``provider_order``; unconfigured ones are skipped."""
    providers: list[PaymentProvider] = []
    for raw in settings.provider_order:
        name = raw.lower()
        if name not in _BUILDERS:
            raise ValueError(f"Unsupported payment provider: {name}")
        build, secret = _BUILDERS[name]
        if not secret(settings):
            logger.warning("provider_not_configured", provider=name)
            continue
        providers.append(build(settings))
        logger.info("provider_configured", provider=name)
    return providers


__all__ = ["build_providers"]
