import pytest

from core.settings import PaymentSettings, StripeSettings, XenditSettings
from infrastructure.external.payments import build_providers
from infrastructure.external.payments.base import BasePaymentClient


def test_only_configured_providers_are_built_in_order():
    settings = PaymentSettings(
        provider_order=["xendit", "stripe"],
        stripe=StripeSettings(secret_key=None),
        xendit=XenditSettings(secret_key="xnd_test"),
    )
    providers = build_providers(settings)
    assert [p.name for p in providers] == ["xendit"]


def test_unknown_provider_is_rejected():
    with pytest.raises(ValueError):
        build_providers(PaymentSettings(provider_order=["paypal"]))


def test_status_mapping_falls_back_to_default():
    class _Client(BasePaymentClient):
        name = "stripe"

    c = _Client()
    assert c._map_status("refund", "requires_action", default="failed") == "pending"
    assert c._map_status("refund", "something_new", default="pending") == "pending"
    assert c._map_status("dispute", "warning_closed", default="open") == "canceled"
