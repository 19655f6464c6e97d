"""
Servicio de sincronización de pedidos del marketplace hacia el inventario.

Estados de un pedido:

    PROCESSING  --(polling, traducción, creación)-->  CREADO EN INVENTARIO
    CREADO EN INVENTARIO  --(polling, SHIPPED, envío)-->  ENVIADO

Cada barrido (pedidos nuevos, envíos) se serializa con su propio lock: una
llamada manual que coincide con el scheduler espera a que termine el ciclo
en curso y después omite lo que ese ciclo ya procesó.
"""
import logging
import threading
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from .exceptions import OrderMappingNotFoundError, UnmappableOrderError
from .inventory_client import InventoryClient
from .mapper_service import MapperService
from .marketplace_client import MarketplaceClient
from .metrics import MappingMetrics, mapping_metrics
from .models import (
    DeliveryAddress,
    ItemError,
    MarketplaceOrder,
    MarketplaceOrderItem,
    OrderSyncStats,
    Recipient,
)
from .retry import RetryExecutor

logger = logging.getLogger(__name__)


def to_minor_units(price) -> int:
    """Precio en unidad mayor -> entero en unidad menor (x100), sin error de coma flotante"""
    amount = price if isinstance(price, Decimal) else Decimal(str(price))
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class OrderService:
    """
    Servicio que lleva los pedidos del marketplace al inventario.

    Este servicio:
    1. Lee los pedidos nuevos (PROCESSING) y los crea en inventario con reserva
    2. Omite individualmente las posiciones sin mapeo
    3. Guarda el mapeo pedido externo -> pedido interno
    4. Crea los envíos de los pedidos enviados (SHIPPED) una sola vez

    Los conjuntos de pedidos ya procesados viven solo en memoria: tras un
    reinicio la deduplicación se apoya en el archivo de mapeo de pedidos
    (existencia del mapeo y marca shippedAt).
    """

    NEW_ORDER_STATUS = "PROCESSING"
    SHIPPED_STATUS = "SHIPPED"
    RETRY_BASE_DELAY = 2.0
    ORDER_NAME_PREFIX = "M2-"

    def __init__(
        self,
        marketplace_client: Optional[MarketplaceClient] = None,
        inventory_client: Optional[InventoryClient] = None,
        mapper: Optional[MapperService] = None,
        retry_executor: Optional[RetryExecutor] = None,
        metrics: Optional[MappingMetrics] = None
    ):
        self.marketplace_client = marketplace_client or MarketplaceClient()
        self.inventory_client = inventory_client or InventoryClient()
        self.mapper = mapper or MapperService()
        self.retry_executor = retry_executor or RetryExecutor(base_delay=self.RETRY_BASE_DELAY, name="orders")
        self.metrics = metrics or mapping_metrics

        self.processed_orders: set[str] = set()
        self.shipped_orders: set[str] = set()
        self._orders_lock = threading.Lock()
        self._shipments_lock = threading.Lock()

    def _fetch_orders(self, status: str) -> list[MarketplaceOrder]:
        return self.retry_executor.call(self.marketplace_client.get_orders, status)

    # --- Pedidos nuevos ---

    def poll_and_process_orders(self) -> OrderSyncStats:
        """
        Lee los pedidos nuevos y los crea en inventario.

        Un error de polling (tras los reintentos) se reporta en las
        estadísticas y se reintentará en la próxima ejecución.

        Returns:
            OrderSyncStats con processed, successful, failed y errors
        """
        if self._orders_lock.locked():
            logger.info("Polling de pedidos en curso. Esperando a que termine...")
        with self._orders_lock:
            return self._poll_new_orders()

    def _poll_new_orders(self) -> OrderSyncStats:
        logger.info("Iniciando polling de pedidos nuevos")
        stats = OrderSyncStats()

        try:
            orders = self._fetch_orders(self.NEW_ORDER_STATUS)
        except Exception as e:
            logger.error(f"Error en el polling de pedidos, se reintentará en la próxima ejecución: {e}")
            stats.errors.append(ItemError(type="polling_error", error=str(e)))
            return stats

        if not orders:
            logger.info("No se encontraron pedidos nuevos")
            return stats

        for order in orders:
            if order.id in self.processed_orders:
                logger.debug(f"Pedido {order.id} ya procesado. Omitiendo.")
                continue

            stats.processed += 1
            try:
                if self.mapper.order_store.exists(order.id):
                    logger.info(f"Pedido {order.id} ya existe en inventario. Omitiendo creación.")
                    self.processed_orders.add(order.id)
                else:
                    self.create_inventory_order(order)
                stats.successful += 1
            except Exception as e:
                logger.error(f"No se pudo procesar el pedido {order.id}: {e}")
                stats.failed += 1
                stats.errors.append(ItemError(item_id=order.id, error=str(e)))

        logger.info(
            f"Polling de pedidos completado: {stats.successful}/{stats.processed} exitosos, "
            f"{stats.failed} fallidos"
        )
        return stats

    def create_inventory_order(self, order: MarketplaceOrder) -> dict:
        """
        Crea en inventario el pedido de cliente correspondiente a un pedido del marketplace.

        Args:
            order: Pedido del marketplace

        Returns:
            dict con el pedido creado en inventario

        Raises:
            UnmappableOrderError: Si ninguna posición tiene mapeo
            InventoryAPIError: Si falla la creación
            LockTimeoutError: Si no se pudo guardar el mapeo del pedido
        """
        logger.info(f"Creando pedido en inventario para el pedido {order.id}")

        mapped_items = self._map_order_items(order)
        valid_items = [(item, internal_id) for item, internal_id in mapped_items if internal_id]
        unmapped = [item.offer_id for item, internal_id in mapped_items if not internal_id]

        if unmapped:
            logger.warning(
                f"El pedido {order.id} tiene {len(unmapped)}/{len(mapped_items)} posiciones sin mapeo "
                f"que se omitirán: {unmapped}"
            )

        if not valid_items:
            raise UnmappableOrderError(order.id, unmapped)

        order_data = self.build_inventory_order_data(order, valid_items)
        created = self.inventory_client.create_customer_order(order_data)

        # El pedido ya existe en inventario aunque falle el guardado del mapeo
        self.processed_orders.add(order.id)
        self.mapper.save_order_mapping(order.id, created['id'])

        logger.info(
            f"Pedido {order.id} creado en inventario (ID: {created['id']}): "
            f"{len(valid_items)} posiciones, {len(unmapped)} omitidas"
        )
        return created

    def _map_order_items(self, order: MarketplaceOrder) -> list[tuple[MarketplaceOrderItem, Optional[str]]]:
        mapped = []
        for item in order.items:
            internal_id = self.mapper.map_external_to_internal(item.offer_id)
            if internal_id is None:
                logger.warning(
                    f"Producto {item.offer_id} ({item.offer_name}) del pedido {order.id} sin mapeo. "
                    f"Posición omitida."
                )
                self.metrics.record_skipped_item("order", str(item.offer_id))
            mapped.append((item, internal_id))
        return mapped

    def build_inventory_order_data(
        self,
        order: MarketplaceOrder,
        valid_items: list[tuple[MarketplaceOrderItem, str]]
    ) -> dict:
        """Payload del pedido de cliente: posiciones con reserva y precio en unidad menor"""
        positions = [
            {
                "assortment": self.inventory_client.entity_meta("product", internal_id),
                "quantity": item.count,
                "price": to_minor_units(item.price),
                "reserve": item.count,
            }
            for item, internal_id in valid_items
        ]

        description = f"Pedido del marketplace, ID: {order.id}"
        if order.delivery:
            if order.delivery.address:
                description += f"\nDirección de entrega: {self._format_address(order.delivery.address)}"
            if order.delivery.recipient:
                description += f"\nDestinatario: {self._format_recipient(order.delivery.recipient)}"

        return {
            "name": f"{self.ORDER_NAME_PREFIX}{order.id}",
            "description": description,
            "positions": positions,
        }

    @staticmethod
    def _format_address(address: DeliveryAddress) -> str:
        parts = [address.postcode, address.city, address.street]
        if address.house:
            parts.append(f"casa {address.house}")
        if address.building:
            parts.append(f"edif. {address.building}")
        if address.apartment:
            parts.append(f"depto. {address.apartment}")
        return ", ".join(p for p in parts if p)

    @staticmethod
    def _format_recipient(recipient: Recipient) -> str:
        parts = [recipient.first_name, recipient.last_name]
        if recipient.phone:
            parts.append(f"tel: {recipient.phone}")
        return " ".join(p for p in parts if p)

    # --- Envíos ---

    def process_shipped_orders(self) -> OrderSyncStats:
        """
        Crea en inventario los envíos de los pedidos enviados en el marketplace.

        Un pedido sin mapeo falla de forma aislada: indica que nunca se creó
        en inventario. Un pedido con shippedAt en su mapeo no se envía de nuevo.
        """
        if self._shipments_lock.locked():
            logger.info("Polling de envíos en curso. Esperando a que termine...")
        with self._shipments_lock:
            return self._poll_shipped_orders()

    def _poll_shipped_orders(self) -> OrderSyncStats:
        logger.info("Iniciando polling de pedidos enviados")
        stats = OrderSyncStats()

        try:
            orders = self._fetch_orders(self.SHIPPED_STATUS)
        except Exception as e:
            logger.error(f"Error en el polling de pedidos enviados, se reintentará: {e}")
            stats.errors.append(ItemError(type="polling_error", error=str(e)))
            return stats

        for order in orders:
            if order.id in self.shipped_orders:
                continue

            stats.processed += 1
            try:
                if self.mapper.order_store.is_shipped(order.id):
                    logger.info(f"El pedido {order.id} ya tiene envío en inventario. Omitiendo.")
                    self.shipped_orders.add(order.id)
                else:
                    self.create_shipment(order.id)
                stats.successful += 1
            except Exception as e:
                logger.error(f"No se pudo crear el envío del pedido {order.id}: {e}")
                stats.failed += 1
                stats.errors.append(ItemError(item_id=order.id, error=str(e)))

        logger.info(
            f"Polling de envíos completado: {stats.successful}/{stats.processed} exitosos, "
            f"{stats.failed} fallidos"
        )
        return stats

    def create_shipment(self, external_order_id: str) -> dict:
        """
        Crea el envío del pedido de inventario asociado a un pedido externo.

        Raises:
            OrderMappingNotFoundError: Si el pedido no tiene mapeo
            LockTimeoutError: Si no se pudo registrar shippedAt
        """
        internal_order_id = self.mapper.get_internal_order_id(external_order_id)
        if not internal_order_id:
            raise OrderMappingNotFoundError(external_order_id)

        shipment_data = {"customerOrder": self.inventory_client.entity_meta("customerorder", internal_order_id)}
        shipment = self.inventory_client.create_shipment(shipment_data)

        # El envío ya existe en inventario aunque falle el registro de shippedAt
        self.shipped_orders.add(external_order_id)
        self.mapper.order_store.mark_shipped(external_order_id)

        logger.info(f"Envío creado para el pedido {external_order_id} (inventario: {internal_order_id})")
        return shipment

    def get_stats(self) -> dict:
        return {
            "processed_orders_count": len(self.processed_orders),
            "shipped_orders_count": len(self.shipped_orders),
        }

    def clear_processed_orders(self) -> None:
        """Vacía los conjuntos de deduplicación (acción administrativa)"""
        self.processed_orders.clear()
        self.shipped_orders.clear()
        logger.info("Caché de pedidos procesados vaciada")
