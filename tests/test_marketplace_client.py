"""
Tests del cliente del marketplace (sesión HTTP mockeada).
"""
import pytest
import requests

from erp_marketplace_sync.exceptions import PermanentAPIError, TransientAPIError
from erp_marketplace_sync.marketplace_client import MarketplaceClient
from erp_marketplace_sync.models import StockUpdate


@pytest.fixture
def client(mock_session):
    return MarketplaceClient(
        base_url="https://market.example.com/",
        token="token",
        campaign_id="777",
        timeout=5,
        session=mock_session
    )


class TestUpdateStocks:

    def test_payload(self, client, mock_session, response_factory):
        mock_session.request.return_value = response_factory(200, {"status": "OK"})

        client.update_stocks([StockUpdate(external_id="OFF1", count=13, warehouse_id=5)])

        method, url = mock_session.request.call_args.args
        payload = mock_session.request.call_args.kwargs["json"]
        assert method == "PUT"
        assert url == "https://market.example.com/campaigns/777/offers/stocks"
        sku = payload["skus"][0]
        assert sku["sku"] == "OFF1"
        assert sku["warehouseId"] == 5
        assert sku["items"][0]["count"] == 13
        assert sku["items"][0]["type"] == "FIT"
        assert "updatedAt" in sku["items"][0]

    def test_auth_header(self, client, mock_session):
        assert mock_session.headers["Authorization"] == "Bearer token"

    def test_more_than_2000_items_rejected(self, client, mock_session):
        updates = [StockUpdate(external_id=f"OFF{i}", count=1) for i in range(2001)]

        with pytest.raises(ValueError):
            client.update_stocks(updates)
        mock_session.request.assert_not_called()

    def test_empty_updates_skip_request(self, client, mock_session):
        assert client.update_stocks([]) == {}
        mock_session.request.assert_not_called()


class TestErrorClassification:

    def test_rate_limit_is_transient_with_retry_after(self, client, mock_session, response_factory):
        mock_session.request.return_value = response_factory(429, {"error": "x"}, headers={"Retry-After": "3"})

        with pytest.raises(TransientAPIError) as exc_info:
            client.update_stocks([StockUpdate(external_id="OFF1", count=1)])

        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after == 3.0

    def test_server_error_is_transient(self, client, mock_session, response_factory):
        mock_session.request.return_value = response_factory(503, {"error": "x"})

        with pytest.raises(TransientAPIError):
            client.get_orders("PROCESSING")

    def test_client_error_is_permanent(self, client, mock_session, response_factory):
        mock_session.request.return_value = response_factory(400, {"error": "x"})

        with pytest.raises(PermanentAPIError) as exc_info:
            client.get_orders("PROCESSING")
        assert exc_info.value.status_code == 400

    def test_network_error_is_transient(self, client, mock_session):
        mock_session.request.side_effect = requests.exceptions.ConnectionError("caída")

        with pytest.raises(TransientAPIError):
            client.get_orders("PROCESSING")


class TestOrders:

    def test_get_orders_paginates_and_skips_invalid(self, client, mock_session, response_factory):
        mock_session.request.side_effect = [
            response_factory(200, {
                "orders": [{"id": 1, "status": "PROCESSING", "items": [{"offerId": "OFF1", "count": 2, "price": "10.5"}]}],
                "pager": {"pagesCount": 2}
            }),
            response_factory(200, {
                "orders": [{"id": 2, "status": "PROCESSING"}, {"status": "PROCESSING"}],
                "pager": {"pagesCount": 2}
            }),
        ]

        orders = client.get_orders("PROCESSING")

        assert [o.id for o in orders] == ["1", "2"]
        assert orders[0].items[0].offer_id == "OFF1"
        assert mock_session.request.call_count == 2
        assert mock_session.request.call_args.kwargs["params"] == {"status": "PROCESSING", "page": 2}

    def test_page_cap_is_logged(self, client, mock_session, response_factory, caplog):
        client.MAX_ORDER_PAGES = 2
        mock_session.request.return_value = response_factory(200, {
            "orders": [{"id": 1, "status": "PROCESSING"}],
            "pager": {"pagesCount": 5}
        })

        with caplog.at_level("WARNING", logger="erp_marketplace_sync.marketplace_client"):
            orders = client.get_orders("PROCESSING")

        assert len(orders) == 2
        assert mock_session.request.call_count == 2
        assert "5 páginas" in caplog.text

    def test_test_connection(self, client, mock_session, response_factory):
        mock_session.request.return_value = response_factory(200, {"campaign": {"id": 777}})
        assert client.test_connection() is True

        mock_session.request.return_value = response_factory(401, {"error": "x"})
        assert client.test_connection() is False
