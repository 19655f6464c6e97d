"""
Tests del servicio de sincronización de pedidos.
"""
import threading
import time
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from erp_marketplace_sync.exceptions import (
    InventoryAPIError,
    OrderMappingNotFoundError,
    PermanentAPIError,
    UnmappableOrderError,
)
from erp_marketplace_sync.mapper_service import MapperService
from erp_marketplace_sync.models import MarketplaceOrder
from erp_marketplace_sync.order_mapping_store import OrderMappingStore
from erp_marketplace_sync.order_service import OrderService, to_minor_units

PRODUCT_MAPPINGS = {"OFF1": "P1", "OFF2": "P2"}


def make_order(order_id="100", offers=("OFF1",), status="PROCESSING", price="10.00", delivery=None):
    return MarketplaceOrder(
        id=order_id,
        status=status,
        items=[{"offerId": offer, "count": 2, "price": price, "offerName": f"Producto {offer}"} for offer in offers],
        delivery=delivery
    )


def entity_meta(entity, entity_id):
    return {"meta": {"href": f"https://inv.example.com/entity/{entity}/{entity_id}", "type": entity}}


@pytest.fixture
def inventory():
    inventory = MagicMock()
    inventory.entity_meta.side_effect = entity_meta
    inventory.create_customer_order.return_value = {"id": "CO-1", "name": "M2-100"}
    inventory.create_shipment.return_value = {"id": "D-1"}
    return inventory


@pytest.fixture
def marketplace():
    marketplace = MagicMock()
    marketplace.get_orders.return_value = []
    return marketplace


@pytest.fixture
def order_mapper():
    mapper = MagicMock()
    mapper.map_external_to_internal.side_effect = PRODUCT_MAPPINGS.get
    mapper.order_store.exists.return_value = False
    mapper.order_store.is_shipped.return_value = False
    mapper.get_internal_order_id.return_value = None
    return mapper


@pytest.fixture
def service(inventory, marketplace, order_mapper, retry_executor, metrics):
    return OrderService(
        marketplace_client=marketplace,
        inventory_client=inventory,
        mapper=order_mapper,
        retry_executor=retry_executor,
        metrics=metrics
    )


def created_payload(inventory):
    return inventory.create_customer_order.call_args.args[0]


class TestCreateInventoryOrder:

    def test_unmapped_items_are_dropped(self, service, inventory, order_mapper, metrics):
        """3 posiciones con 1 sin mapeo crean un pedido de 2 posiciones"""
        service.create_inventory_order(make_order(offers=("OFF1", "OFF-UNKNOWN", "OFF2")))

        positions = created_payload(inventory)["positions"]
        assert [p["assortment"]["meta"]["href"].rsplit("/", 1)[-1] for p in positions] == ["P1", "P2"]
        order_mapper.save_order_mapping.assert_called_once_with("100", "CO-1")
        assert metrics.skipped_items["order"] == 1

    def test_all_items_unmapped_fails_without_mapping(self, service, inventory, order_mapper):
        with pytest.raises(UnmappableOrderError) as exc_info:
            service.create_inventory_order(make_order(offers=("OFF-X", "OFF-Y")))

        assert exc_info.value.external_ids == ["OFF-X", "OFF-Y"]
        inventory.create_customer_order.assert_not_called()
        order_mapper.save_order_mapping.assert_not_called()

    def test_payload(self, service, inventory):
        service.create_inventory_order(make_order(price="199.99"))

        payload = created_payload(inventory)
        position = payload["positions"][0]
        assert payload["name"] == "M2-100"
        assert position["quantity"] == 2
        assert position["reserve"] == 2
        assert position["price"] == 19999
        assert position["assortment"]["meta"]["type"] == "product"

    def test_description_includes_delivery(self, service, inventory):
        delivery = {
            "address": {"postcode": "28001", "city": "Madrid", "street": "Gran Vía", "house": "12", "apartment": "3"},
            "recipient": {"firstName": "Ana", "lastName": "Pérez", "phone": "+34600000000"},
        }
        service.create_inventory_order(make_order(delivery=delivery))

        description = created_payload(inventory)["description"]
        assert "28001, Madrid, Gran Vía, casa 12, depto. 3" in description
        assert "Ana Pérez tel: +34600000000" in description

    def test_inventory_failure_saves_no_mapping(self, service, inventory, order_mapper):
        inventory.create_customer_order.side_effect = InventoryAPIError("400", status_code=400)

        with pytest.raises(InventoryAPIError):
            service.create_inventory_order(make_order())

        order_mapper.save_order_mapping.assert_not_called()
        assert "100" not in service.processed_orders


class TestPriceConversion:

    @pytest.mark.parametrize("price, expected", [
        (Decimal("199.99"), 19999),
        ("0.29", 29),
        ("10.005", 1001),
        (0.1 + 0.2, 30),
        (1234, 123400),
    ])
    def test_to_minor_units(self, price, expected):
        assert to_minor_units(price) == expected


class TestPollAndProcessOrders:

    def test_partial_order_is_created(self, service, marketplace, inventory):
        marketplace.get_orders.return_value = [make_order(offers=("OFF1", "OFF-UNKNOWN"))]

        stats = service.poll_and_process_orders()

        assert (stats.processed, stats.successful, stats.failed) == (1, 1, 0)
        assert len(created_payload(inventory)["positions"]) == 1
        marketplace.get_orders.assert_called_once_with("PROCESSING")

    def test_processed_orders_are_not_created_twice(self, service, marketplace, inventory):
        marketplace.get_orders.return_value = [make_order()]

        service.poll_and_process_orders()
        stats = service.poll_and_process_orders()

        assert stats.processed == 0
        assert inventory.create_customer_order.call_count == 1

    def test_order_with_existing_mapping_is_not_recreated(self, service, marketplace, inventory, order_mapper):
        order_mapper.order_store.exists.return_value = True
        marketplace.get_orders.return_value = [make_order()]

        stats = service.poll_and_process_orders()

        assert stats.successful == 1
        inventory.create_customer_order.assert_not_called()
        assert "100" in service.processed_orders

    def test_one_failed_order_does_not_stop_the_rest(self, service, marketplace, inventory):
        marketplace.get_orders.return_value = [make_order("1"), make_order("2"), make_order("3", offers=("OFF-X",))]
        inventory.create_customer_order.side_effect = [InventoryAPIError("500", status_code=500), {"id": "CO-2"}]

        stats = service.poll_and_process_orders()

        assert (stats.processed, stats.successful, stats.failed) == (3, 1, 2)
        assert sorted(e.item_id for e in stats.errors) == ["1", "3"]
        assert service.processed_orders == {"2"}

    def test_polling_failure_is_reported(self, service, marketplace):
        marketplace.get_orders.side_effect = PermanentAPIError("401", status_code=401)

        stats = service.poll_and_process_orders()

        assert stats.processed == 0
        assert stats.errors[0].type == "polling_error"

    def test_clear_processed_orders(self, service, marketplace, inventory):
        marketplace.get_orders.return_value = [make_order()]
        service.poll_and_process_orders()

        service.clear_processed_orders()

        assert service.get_stats() == {"processed_orders_count": 0, "shipped_orders_count": 0}


class TestShipments:

    def test_create_shipment_references_inventory_order(self, service, inventory, order_mapper):
        order_mapper.get_internal_order_id.return_value = "CO-1"

        service.create_shipment("100")

        inventory.create_shipment.assert_called_once_with({"customerOrder": entity_meta("customerorder", "CO-1")})

    def test_create_shipment_without_mapping_fails(self, service, inventory):
        with pytest.raises(OrderMappingNotFoundError):
            service.create_shipment("404")
        inventory.create_shipment.assert_not_called()

    def test_process_shipped_orders(self, service, marketplace, inventory, order_mapper):
        order_mapper.get_internal_order_id.side_effect = {"100": "CO-1"}.get
        marketplace.get_orders.return_value = [
            make_order("100", status="SHIPPED"),
            make_order("404", status="SHIPPED"),
        ]

        stats = service.process_shipped_orders()

        marketplace.get_orders.assert_called_once_with("SHIPPED")
        assert (stats.processed, stats.successful, stats.failed) == (2, 1, 1)
        assert [e.item_id for e in stats.errors] == ["404"]
        assert service.shipped_orders == {"100"}
        order_mapper.order_store.mark_shipped.assert_called_once_with("100")

        second = service.process_shipped_orders()
        assert second.processed == 1
        assert inventory.create_shipment.call_count == 1

    def test_shipment_is_not_repeated_after_restart(
        self, marketplace, inventory, mapper, order_store, retry_executor, metrics
    ):
        """El envío queda registrado en el archivo: un servicio nuevo no lo repite"""
        order_store.save("100", "CO-1")
        marketplace.get_orders.return_value = [make_order("100", status="SHIPPED")]

        def new_service(order_mapper):
            return OrderService(
                marketplace_client=marketplace,
                inventory_client=inventory,
                mapper=order_mapper,
                retry_executor=retry_executor,
                metrics=metrics
            )

        first = new_service(mapper).process_shipped_orders()
        restarted_mapper = MapperService(
            product_store=mapper.product_store,
            order_store=OrderMappingStore(file_path=str(order_store.file_path)),
            metrics=metrics
        )
        second = new_service(restarted_mapper).process_shipped_orders()

        assert first.successful == 1
        assert second.successful == 1
        assert inventory.create_shipment.call_count == 1
        assert order_store.is_shipped("100")


class TestConcurrentSweeps:

    def test_overlapping_polls_create_the_order_once(self, service, marketplace, inventory):
        marketplace.get_orders.return_value = [make_order()]

        def slow_create(order_data):
            time.sleep(0.2)
            return {"id": "CO-1"}
        inventory.create_customer_order.side_effect = slow_create

        threads = [threading.Thread(target=service.poll_and_process_orders) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert inventory.create_customer_order.call_count == 1

    def test_overlapping_shipment_sweeps_ship_once(self, service, marketplace, inventory, order_mapper):
        order_mapper.get_internal_order_id.return_value = "CO-1"
        marketplace.get_orders.return_value = [make_order("100", status="SHIPPED")]

        def slow_shipment(shipment_data):
            time.sleep(0.2)
            return {"id": "D-1"}
        inventory.create_shipment.side_effect = slow_shipment

        threads = [threading.Thread(target=service.process_shipped_orders) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert inventory.create_shipment.call_count == 1
