"""
Unit tests for Pricing main service.
"""

import json
import pytest
from fastapi.testclient import TestClient

from shared.test_helpers import UNLIMITED_ESSENTIAL, PricingDataFactory, TestEnvironment
from service_pricing.app.main import PricingService, sse_frame


def parse_sse(body: str):
    """Split an SSE body into (event, payload) pairs."""
    frames = []
    for chunk in body.strip().split("\n\n"):
        event = None
        data = None
        for line in chunk.splitlines():
            if line.startswith("event: "):
                event = line[len("event: "):]
            elif line.startswith("data: "):
                data = json.loads(line[len("data: "):])
        frames.append((event, data))
    return frames


class TestPricingService:
    """Test cases for PricingService."""

    @pytest.fixture
    def pricing_service(self, surcharge_store):
        """Create PricingService over the test catalog."""
        return PricingService(
            catalog=PricingDataFactory.create_test_catalog(),
            strategy_store=surcharge_store,
        )

    @pytest.fixture
    def client(self, pricing_service):
        """Create test client."""
        return TestClient(pricing_service.app)

    @pytest.fixture
    def mock_pricing_request(self):
        """Mock pricing request."""
        return {
            "destinationOrBundle": "US",
            "requestedDuration": 7,
            "group": UNLIMITED_ESSENTIAL,
        }

    def test_root_endpoint(self, client):
        """Test root endpoint."""
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "pricing"
        assert "rule_engine" in data["capabilities"]

    def test_health_endpoint(self, client):
        """Test health check endpoint."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "pricing"
        assert data["status"] == "ok"
        assert data["dependencies"] == {"strategies": "ok", "catalog": "ok"}

    def test_calculate_price(self, client, mock_pricing_request):
        """Test single pricing."""
        response = client.post("/pricing/calculate", json=mock_pricing_request)

        assert response.status_code == 200
        data = response.json()
        assert data["finalPrice"] == 21.99
        assert data["currency"] == "USD"
        assert [step["ruleId"] for step in data["pricingSteps"]] == [
            "base-price", "markup", "processing-fee", "region-rounding"
        ]

    def test_calculate_price_ukraine(self, client):
        """Test the UA fixed price over HTTP."""
        response = client.post("/pricing/calculate", json={"destinationOrBundle": "UA", "requestedDuration": 7})

        assert response.status_code == 200
        assert response.json()["finalPrice"] == 88.0

    def test_calculate_price_no_bundles(self, client):
        """Test unknown destinations map to a 400 error response."""
        response = client.post("/pricing/calculate", json={"destinationOrBundle": "ZZ", "requestedDuration": 7})

        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "NO_BUNDLES_AVAILABLE"
        assert data["details"]["destination"] == "ZZ"
        assert "correlation_id" in data

    def test_calculate_price_unknown_strategy(self, client, mock_pricing_request):
        """Test an unknown strategy code is a 404."""
        response = client.post(
            "/pricing/calculate",
            params={"strategy_code": "missing"},
            json=mock_pricing_request,
        )

        assert response.status_code == 404
        assert response.json()["code"] == "STRATEGY_NOT_FOUND"

    def test_calculate_price_calculation_failed(self, client):
        """Test a failing block is a 422 with the block id."""
        response = client.post(
            "/pricing/calculate",
            params={"strategy_code": "with-surcharge"},
            json={"destinationOrBundle": "IL", "requestedDuration": 3},
        )

        assert response.status_code == 422
        data = response.json()
        assert data["code"] == "CALCULATION_FAILED"
        assert data["details"]["rule_id"] == "il-surcharge"

    def test_calculate_price_invalid_body(self, client):
        """Test request validation errors."""
        response = client.post("/pricing/calculate", json={"destinationOrBundle": "US"})
        assert response.status_code == 422

    def test_batch_pricing_stream(self, client):
        """Test batch pricing streams one frame per input plus a completion frame."""
        body = {
            "strategyCode": "with-surcharge",
            "inputs": [
                {"destinationOrBundle": "US", "requestedDuration": 7},
                {"destinationOrBundle": "UA", "requestedDuration": 7},
                {"destinationOrBundle": "IL", "requestedDuration": 3},
                {"destinationOrBundle": "US", "requestedDuration": 12},
                {"destinationOrBundle": "FR", "requestedDuration": 5},
            ],
        }
        response = client.post("/pricing/batch", json=body)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")

        frames = parse_sse(response.text)
        items = [data for event, data in frames if event is None]
        complete = [data for event, data in frames if event == "complete"]

        assert sorted(item["index"] for item in items) == [0, 1, 2, 3, 4]
        assert [item["index"] for item in items if item["error"]] == [2]
        assert complete == [{"correlationId": complete[0]["correlationId"], "total": 5, "failed": 1}]

    def test_batch_pricing_unknown_strategy(self, client):
        """Test strategy-load failure rejects the whole batch."""
        response = client.post("/pricing/batch", json={
            "strategyCode": "missing",
            "inputs": [{"destinationOrBundle": "US", "requestedDuration": 7}],
        })

        assert response.status_code == 404
        assert response.json()["code"] == "STRATEGY_NOT_FOUND"

    def test_calculate_price_stream(self, client, mock_pricing_request):
        """Test single-run step streaming."""
        response = client.post("/pricing/calculate/stream", json=mock_pricing_request)

        assert response.status_code == 200
        updates = [data for _, data in parse_sse(response.text)]
        assert [update["isComplete"] for update in updates] == [False] * 4 + [True]
        assert updates[-1]["finalBreakdown"]["finalPrice"] == 21.99

    def test_get_strategy(self, client):
        """Test strategy description lists bindings in execution order."""
        response = client.get("/pricing/strategies/default-pricing")

        assert response.status_code == 200
        data = response.json()
        assert data["isDefault"] is True
        assert [binding["blockId"] for binding in data["bindings"]] == [
            "base-price", "markup", "unused-days-discount", "processing-fee",
            "region-rounding", "fixed-price-ua",
        ]
        rounding = data["bindings"][4]
        assert rounding["priority"] == 10
        assert rounding["blockPriority"] == 100
        assert data["bindings"][2]["facts"] == ["isExactMatch", "unusedDays"]

    def test_get_strategy_not_found(self, client):
        """Test unknown strategies are 404."""
        response = client.get("/pricing/strategies/missing")
        assert response.status_code == 404

    def test_metrics_endpoint(self, client, mock_pricing_request):
        """Test pricing metrics are exported."""
        client.post("/pricing/calculate", json=mock_pricing_request)
        response = client.get("/metrics")

        assert response.status_code == 200
        assert 'pricing_runs_total{outcome="success"} 1.0' in response.text

    def test_sse_frame(self):
        """Test SSE frame encoding."""
        assert sse_frame({"a": 1}) == 'data: {"a": 1}\n\n'
        assert sse_frame({"a": 1}, event="complete") == 'event: complete\ndata: {"a": 1}\n\n'

    def test_request_id_echoed(self, client):
        """Test the request id header is echoed back."""
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_config_from_environment(self, monkeypatch, surcharge_store):
        """Test PRICING_* environment variables configure the service."""
        for key, value in TestEnvironment.get_mock_config().items():
            monkeypatch.setenv(key, value)

        service = PricingService(
            catalog=PricingDataFactory.create_test_catalog(),
            strategy_store=surcharge_store,
        )

        assert service.config.env == "test"
        assert service.config.batch_max_concurrency == 4
        assert service.config.default_strategy_code == "default-pricing"

    def test_list_strategies(self, client):
        """Test listing strategy codes."""
        response = client.get("/pricing/strategies")

        assert response.status_code == 200
        assert response.json() == {
            "strategies": ["default-pricing", "with-surcharge"],
            "defaultCode": "default-pricing",
            "configuredDefault": "default-pricing",
        }

    def test_configured_currency(self):
        """Test the configured default currency reaches the result."""
        service = PricingService(catalog=PricingDataFactory.create_test_catalog(), default_currency="EUR")
        response = TestClient(service.app).post(
            "/pricing/calculate", json={"destinationOrBundle": "US", "requestedDuration": 7}
        )

        assert response.status_code == 200
        assert response.json()["currency"] == "EUR"


class TestPricingServiceUnexpectedErrors:
    """Test cases for unexpected failures inside a pricing run."""

    @pytest.fixture
    def client(self):
        """Create a client whose discount provider fails."""
        def failing_provider(selection, request):
            raise RuntimeError("discount source unavailable")

        service = PricingService(
            catalog=PricingDataFactory.create_test_catalog(),
            discount_per_day_provider=failing_provider,
        )
        return TestClient(service.app)

    def test_calculate_wraps_unexpected_error(self, client):
        """Test single pricing reports CalculationFailed instead of a 500."""
        response = client.post("/pricing/calculate", json={"destinationOrBundle": "US", "requestedDuration": 7})

        assert response.status_code == 422
        data = response.json()
        assert data["code"] == "CALCULATION_FAILED"
        assert "discount source unavailable" in data["message"]

    def test_stream_ends_with_error_frame(self, client):
        """Test step streaming ends with a complete error frame."""
        response = client.post(
            "/pricing/calculate/stream", json={"destinationOrBundle": "US", "requestedDuration": 7}
        )

        assert response.status_code == 200
        updates = [data for _, data in parse_sse(response.text)]
        assert updates[-1]["isComplete"] is True
        assert updates[-1]["error"]["code"] == "CALCULATION_FAILED"
