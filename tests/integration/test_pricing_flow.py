"""
End-to-end integration tests for the pricing flow.
"""

import json

import httpx
import pytest
import yaml

from shared.test_helpers import UNLIMITED_ESSENTIAL, PricingDataFactory
from service_pricing.app.main import PricingService


def _sse_payloads(body: str):
    return [
        json.loads(line[len("data: "):])
        for line in body.splitlines()
        if line.startswith("data: ")
    ]


class TestPricingFlow:
    """End-to-end tests over YAML-configured catalog and strategies."""

    @pytest.fixture
    def catalog_file(self, tmp_path):
        """Write the test catalog to YAML."""
        path = tmp_path / "catalog.yaml"
        path.write_text(yaml.safe_dump({
            "countries": PricingDataFactory.create_test_countries(),
            "bundles": PricingDataFactory.create_test_bundles(),
        }))
        return str(path)

    @pytest.fixture
    def strategies_file(self, tmp_path):
        """Write a promotional strategy to YAML."""
        blocks = [
            PricingDataFactory.create_block_row("base", "set-base-price", priority=100),
            PricingDataFactory.create_block_row(
                "promo-discount",
                "APPLY_DISCOUNT_PERCENTAGE",
                {"value": 10},
                priority=50,
                name="Summer promotional discount",
            ),
            PricingDataFactory.create_block_row("rounding", "apply-region-rounding", priority=10),
        ]
        strategies = [
            PricingDataFactory.create_strategy_row(
                "summer-promo",
                [{"block_id": "base"}, {"block_id": "promo-discount"}, {"block_id": "rounding"}],
                is_default=True,
            ),
        ]
        path = tmp_path / "strategies.yaml"
        path.write_text(yaml.safe_dump({"blocks": blocks, "strategies": strategies}))
        return str(path)

    @pytest.fixture
    def app(self, catalog_file, strategies_file):
        """Create the pricing app from YAML files."""
        service = PricingService(
            catalog_file=catalog_file,
            strategies_file=strategies_file,
            default_strategy_code="summer-promo",
        )
        return service.app

    @pytest.fixture
    def client(self, app):
        """Create an in-process HTTP client."""
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://pricing")

    @pytest.mark.asyncio
    async def test_single_pricing_with_yaml_strategy(self, client):
        """Test a request priced by the YAML-defined default strategy."""
        async with client:
            response = await client.post("/pricing/calculate", json={
                "destinationOrBundle": "US",
                "requestedDuration": 7,
                "group": UNLIMITED_ESSENTIAL,
            })

        assert response.status_code == 200
        data = response.json()
        # 9.00 less 10% is 8.10, rounded to 8.99
        assert data["finalPrice"] == 8.99
        assert data["strategyCode"] == "summer-promo"
        assert [step["ruleId"] for step in data["pricingSteps"]] == ["base", "promo-discount", "rounding"]
        assert data["discountValue"] == 0.9
        assert data["savingsAmount"] == 0.01

    @pytest.mark.asyncio
    async def test_health_reports_loaded_files(self, client):
        """Test health sees the YAML catalog and strategy."""
        async with client:
            response = await client.get("/health")

        assert response.json()["dependencies"] == {"strategies": "ok", "catalog": "ok"}

    @pytest.mark.asyncio
    async def test_batch_then_describe(self, client):
        """Test a batch run followed by a strategy description."""
        async with client:
            batch = await client.post("/pricing/batch", json={
                "inputs": [
                    {"destinationOrBundle": "US", "requestedDuration": 7},
                    {"destinationOrBundle": "Europe", "requestedDuration": 7},
                    {"destinationOrBundle": "ZZ", "requestedDuration": 7},
                ],
            })
            described = await client.get("/pricing/strategies/summer-promo")

        payloads = _sse_payloads(batch.text)
        items = {payload["index"]: payload for payload in payloads if "index" in payload}
        summary = payloads[-1]

        assert set(items) == {0, 1, 2}
        assert items[2]["error"]["code"] == "NO_BUNDLES_AVAILABLE"
        assert items[0]["result"]["strategyCode"] == "summer-promo"
        assert summary["total"] == 3
        assert summary["failed"] == 1

        assert described.status_code == 200
        assert [binding["blockId"] for binding in described.json()["bindings"]] == [
            "base", "promo-discount", "rounding"
        ]

    @pytest.mark.asyncio
    async def test_default_strategy_not_configured(self, client):
        """Test the built-in default strategy is absent when a strategies file is used."""
        async with client:
            response = await client.post(
                "/pricing/calculate",
                params={"strategy_code": "default-pricing"},
                json={"destinationOrBundle": "US", "requestedDuration": 7},
            )

        assert response.status_code == 404
        assert response.json()["details"] == {"strategy_code": "default-pricing"}
