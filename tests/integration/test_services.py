# =============================================================================
# tests/integration/test_services.py
# Integration Tests for the Wired OfflineServices
# =============================================================================

import httpx
import pytest
import pytest_asyncio

from pharmacare_core.config import OfflineSettings
from pharmacare_core.offline import COLLECTIONS, OfflineServices
from pharmacare_core.offline.storage_backend import MemoryKeyValueStore


BASE_URL = "https://api.test/make-server"


@pytest_asyncio.fixture
async def services(fake_remote, clock):
    settings = OfflineSettings(api_base_url=BASE_URL, access_token="token")
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_remote.handler))
    services = OfflineServices.from_settings(
        settings,
        backend=MemoryKeyValueStore(),
        http_client=http_client,
        clock=clock,
    )
    services.initialize()
    yield services
    await services.close()
    await http_client.aclose()


class TestOfflineServices:
    """End-to-end flows through the wired components"""

    @pytest.mark.asyncio
    async def test_resource_facades(self, services):
        for name in COLLECTIONS:
            assert getattr(services, name).collection == name
        with pytest.raises(AttributeError):
            services.invoices

    @pytest.mark.asyncio
    async def test_offline_prescription_then_sync(self, services, fake_remote):
        fake_remote.fail_with = httpx.ConnectError

        number = services.generator.next_prescription_number()
        record = await services.prescriptions.create({"prescription_number": number, "patient_id": "1"})

        assert number == "RX-20241115-0001"
        assert record["localOnly"] is True
        # demo data was seeded when the connection dropped
        assert services.store.get_by_id("medicines", "1")["name"] == "Paracetamol 500mg"

        fake_remote.fail_with = None
        await services.monitor.probe()
        await services.sync_engine.wait_idle()

        [synced] = fake_remote.collections["prescriptions"]
        assert synced["prescription_number"] == "RX-20241115-0001"
        assert services.store.get_pending_sync() == []

    @pytest.mark.asyncio
    async def test_number_not_reissued_after_counter_reset(self, services, fake_remote):
        fake_remote.fail_with = 500
        first = services.generator.next_prescription_number()
        await services.prescriptions.create({"prescription_number": first})

        services.generator.reset()

        assert services.generator.next_prescription_number() == "RX-20241115-0002"

    @pytest.mark.asyncio
    async def test_dashboard_cache_invalidated_by_sale(self, services):
        services.dashboard_cache.save({"revenue": 10})

        await services.sales.create({"total": 5})

        assert services.dashboard_cache.get() is None

    @pytest.mark.asyncio
    async def test_fetch_dataframe(self, services, fake_remote):
        fake_remote.collections["medicines"] = [{"id": "1", "stock": 3}, {"id": "2", "stock": 4}]

        df = await services.medicines.fetch_dataframe()

        assert list(df["stock"]) == [3, 4]

    @pytest.mark.asyncio
    async def test_status(self, services):
        await services.monitor.probe()
        status = services.get_status()

        assert status["connection"]["is_online"] is True
        assert status["sync"]["pending_changes"] == 0
        assert status["today"]["date"] == "20241115"
        assert status["remote_configured"] is True
