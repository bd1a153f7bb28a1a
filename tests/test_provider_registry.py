import asyncio

import pytest

from application.ports.payment_provider import PaymentProvider
from application.services.provider_registry import ProviderRegistry
from domain.common.exceptions import NoAvailableProviderException, ProviderNotRegisteredException
from tests.fakes import FakeProvider


def test_fake_provider_satisfies_port():
    assert isinstance(FakeProvider("a"), PaymentProvider)


@pytest.mark.asyncio
async def test_select_skips_unavailable_and_keeps_order():
    a = FakeProvider("a", available=False)
    b = FakeProvider("b")
    c = FakeProvider("c")
    registry = ProviderRegistry([a, b, c], availability_timeout=0.05)

    selected = await registry.select_available()
    assert selected is b


@pytest.mark.asyncio
async def test_select_all_unavailable_lists_tried():
    registry = ProviderRegistry(
        [FakeProvider("a", available=False), FakeProvider("b", available=False)],
        availability_timeout=0.05,
    )
    with pytest.raises(NoAvailableProviderException) as ei:
        await registry.select_available()
    assert ei.value.details["tried"] == ["a", "b"]


@pytest.mark.asyncio
async def test_empty_registry_has_no_provider():
    with pytest.raises(NoAvailableProviderException):
        await ProviderRegistry().select_available()


@pytest.mark.asyncio
async def test_probe_timeout_and_error_count_as_unavailable():
    hanging = FakeProvider("hanging", available="hang")
    broken = FakeProvider("broken", available=RuntimeError("probe exploded"))
    healthy = FakeProvider("healthy")
    registry = ProviderRegistry([hanging, broken, healthy], availability_timeout=0.05)

    selected = await asyncio.wait_for(registry.select_available(), timeout=2)
    assert selected is healthy


@pytest.mark.asyncio
async def test_add_provider_appends_and_rejects_duplicates():
    registry = ProviderRegistry([FakeProvider("a", available=False)], availability_timeout=0.05)
    await registry.add_provider(FakeProvider("b"))
    assert registry.names() == ["a", "b"]
    assert (await registry.select_available()).name == "b"

    with pytest.raises(ValueError):
        await registry.add_provider(FakeProvider("b"))


@pytest.mark.asyncio
async def test_concurrent_add_and_select():
    registry = ProviderRegistry([FakeProvider("seed")], availability_timeout=0.05)

    async def add(i: int) -> None:
        await registry.add_provider(FakeProvider(f"p{i}"))

    results = await asyncio.gather(
        *(add(i) for i in range(10)),
        *(registry.select_available() for _ in range(10)),
    )
    assert len(registry.names()) == 11
    assert all(r.name == "seed" for r in results[10:])


def test_get_resolves_by_name():
    a, b = FakeProvider("a"), FakeProvider("b")
    registry = ProviderRegistry([a, b])
    assert registry.get("b") is b
    with pytest.raises(ProviderNotRegisteredException):
        registry.get("missing")
    with pytest.raises(ProviderNotRegisteredException):
        registry.get(None)


@pytest.mark.asyncio
async def test_aclose_closes_every_provider():
    a, b = FakeProvider("a"), FakeProvider("b")
    registry = ProviderRegistry([a, b])
    await registry.aclose()
    assert a.closed and b.closed
