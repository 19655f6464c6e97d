"""
Tests del cliente del sistema de inventario (sesión HTTP mockeada).
"""
import pytest
import requests

from erp_marketplace_sync.exceptions import InventoryAPIError
from erp_marketplace_sync.inventory_client import InventoryClient

BASE_URL = "https://inventory.example.com/api/remap/1.2"


@pytest.fixture
def client(mock_session):
    return InventoryClient(base_url=BASE_URL, token="token", timeout=5, session=mock_session)


class TestProductStock:

    def test_sums_stock_and_reserve_over_stores(self, client, mock_session, response_factory):
        mock_session.request.return_value = response_factory(200, {"rows": [
            {"stock": 10, "reserve": 2},
            {"stock": 5, "reserve": 0},
        ]})

        stock = client.get_product_stock("P1")

        assert stock.total_stock == 15
        assert stock.total_reserve == 2
        assert stock.available_stock == 13
        params = mock_session.request.call_args.kwargs["params"]
        assert params["filter"] == f"product={BASE_URL}/entity/product/P1"

    def test_no_rows_means_zero_stock(self, client, mock_session, response_factory):
        mock_session.request.return_value = response_factory(200, {"rows": []})

        assert client.get_product_stock("P1").available_stock == 0

    def test_server_error_is_transient(self, client, mock_session, response_factory):
        mock_session.request.return_value = response_factory(500, {"errors": []})

        with pytest.raises(InventoryAPIError) as exc_info:
            client.get_product_stock("P1")
        assert exc_info.value.transient is True

    def test_not_found_is_permanent(self, client, mock_session, response_factory):
        mock_session.request.return_value = response_factory(404, {"errors": []})

        with pytest.raises(InventoryAPIError) as exc_info:
            client.get_product_stock("P1")
        assert exc_info.value.transient is False
        assert exc_info.value.status_code == 404


class TestDocuments:

    def test_entity_meta(self, client):
        meta = client.entity_meta("customerorder", "CO-1")["meta"]

        assert meta["href"] == f"{BASE_URL}/entity/customerorder/CO-1"
        assert meta["type"] == "customerorder"
        assert meta["mediaType"] == "application/json"

    def test_create_customer_order(self, client, mock_session, response_factory):
        mock_session.request.return_value = response_factory(200, {"id": "CO-1", "name": "M2-1"})

        order = client.create_customer_order({"name": "M2-1", "positions": []})

        assert order["id"] == "CO-1"
        method, url = mock_session.request.call_args.args
        assert (method, url) == ("POST", f"{BASE_URL}/entity/customerorder")

    def test_create_customer_order_without_id_fails(self, client, mock_session, response_factory):
        mock_session.request.return_value = response_factory(200, {"name": "M2-1"})

        with pytest.raises(InventoryAPIError):
            client.create_customer_order({"name": "M2-1", "positions": []})

    def test_create_shipment(self, client, mock_session, response_factory):
        mock_session.request.return_value = response_factory(200, {"id": "D-1"})

        client.create_shipment({"customerOrder": client.entity_meta("customerorder", "CO-1")})

        method, url = mock_session.request.call_args.args
        assert (method, url) == ("POST", f"{BASE_URL}/entity/demand")

    def test_test_connection_handles_network_error(self, client, mock_session):
        mock_session.request.side_effect = requests.exceptions.Timeout("lento")

        assert client.test_connection() is False
