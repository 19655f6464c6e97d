"""
Servicio de sincronización de stock entre el inventario y el marketplace.
"""
import logging
import time
from typing import Optional

from .exceptions import StockValidationError
from .inventory_client import InventoryClient
from .mapper_service import MapperService
from .marketplace_client import MarketplaceClient
from .metrics import MappingMetrics, mapping_metrics
from .models import ItemError, StockUpdate, SyncStats
from .retry import RetryExecutor
from .config import settings

logger = logging.getLogger(__name__)


class StockService:
    """
    Servicio que propaga el stock disponible del inventario al marketplace.

    Este servicio:
    1. Atiende webhooks de un solo producto (sin propagar errores)
    2. Ejecuta el barrido completo periódico sobre todos los productos mapeados
    3. Aísla los errores por producto y devuelve estadísticas completas
    """

    RETRY_BASE_DELAY = 1.0

    def __init__(
        self,
        inventory_client: Optional[InventoryClient] = None,
        marketplace_client: Optional[MarketplaceClient] = None,
        mapper: Optional[MapperService] = None,
        retry_executor: Optional[RetryExecutor] = None,
        metrics: Optional[MappingMetrics] = None,
        warehouse_id: Optional[int] = None
    ):
        """Inicializa el servicio de stock"""
        self.inventory_client = inventory_client or InventoryClient()
        self.marketplace_client = marketplace_client or MarketplaceClient()
        self.mapper = mapper or MapperService()
        self.retry_executor = retry_executor or RetryExecutor(base_delay=self.RETRY_BASE_DELAY, name="stock")
        self.metrics = metrics or mapping_metrics
        self.warehouse_id = warehouse_id if warehouse_id is not None else settings.MARKETPLACE_WAREHOUSE_ID

    def push_stock(self, internal_id: str, context: str = "stock") -> bool:
        """
        Traduce un ID interno y envía su stock disponible al marketplace.

        Args:
            internal_id: ID del producto en inventario
            context: Origen de la llamada para las métricas (stock, webhook)

        Returns:
            True si se envió, False si se omitió por falta de mapeo

        Raises:
            InventoryAPIError, TransientAPIError, PermanentAPIError, StockValidationError
        """
        external_id = self.mapper.map_internal_to_external(internal_id)
        if not external_id:
            logger.info(f"Producto {internal_id} sin mapeo. Omitiendo.")
            self.metrics.record_skipped_item(context, str(internal_id))
            return False

        stock = self.inventory_client.get_product_stock(internal_id)
        self.update_marketplace_stock(external_id, stock.available_stock)

        logger.info(f"Stock sincronizado: {internal_id} -> {external_id} = {stock.available_stock}")
        return True

    def update_marketplace_stock(self, external_id: str, available_stock: int) -> None:
        """
        Envía el stock de una oferta aplicando la política de reintentos.

        Raises:
            StockValidationError: Si el stock disponible es negativo
        """
        if available_stock < 0:
            raise StockValidationError(f"Stock disponible inválido para {external_id}: {available_stock}")

        update = StockUpdate(external_id=external_id, count=available_stock, warehouse_id=self.warehouse_id)
        self.retry_executor.call(self.marketplace_client.update_stocks, [update])

    def handle_webhook_update(self, internal_id: str) -> None:
        """
        Procesa el cambio de stock notificado por webhook.

        Nunca propaga errores: el barrido periódico corrige cualquier fallo.
        """
        logger.info(f"Procesando webhook de stock para {internal_id}")
        if not internal_id:
            logger.warning("Webhook con ID interno vacío. Omitiendo.")
            return

        try:
            self.push_stock(internal_id, context="webhook")
        except Exception as e:
            logger.error(f"Error al procesar webhook de stock para {internal_id}: {e}")

    def full_sweep(self) -> SyncStats:
        """
        Sincroniza el stock de todos los productos mapeados.

        Procesa los productos en secuencia; el fallo de uno se registra y el
        barrido continúa.

        Returns:
            SyncStats con synced + skipped + len(errors) == total
        """
        start_time = time.time()
        internal_ids = self.mapper.list_internal_ids()
        stats = SyncStats(total=len(internal_ids))

        logger.info(f"Iniciando barrido completo de stock: {stats.total} productos")

        for internal_id in internal_ids:
            try:
                if self.push_stock(internal_id, context="stock"):
                    stats.synced += 1
                else:
                    stats.skipped += 1
            except Exception as e:
                logger.error(f"Error al sincronizar producto {internal_id}: {e}")
                stats.errors.append(ItemError(item_id=internal_id, error=str(e)))

        stats.total_time_seconds = time.time() - start_time
        logger.info(
            f"Barrido de stock completado en {stats.total_time_seconds:.2f}s: "
            f"{stats.synced}/{stats.total} sincronizados, {stats.skipped} omitidos, "
            f"{len(stats.errors)} errores. Reintentos: {self.retry_executor.total_retries}"
        )
        return stats
