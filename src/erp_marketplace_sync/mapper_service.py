"""
Servicio de mapeo entre identificadores del inventario y del marketplace.
"""
import logging
from typing import Optional

from .exceptions import MappingNotLoadedError
from .metrics import MappingMetrics, mapping_metrics
from .order_mapping_store import OrderMappingStore
from .product_mapping_store import ProductMappingStore

logger = logging.getLogger(__name__)


class MapperService:
    """
    Fachada sobre los almacenes de mapeo de productos y de pedidos.

    Los lookups de un ID ausente no son un error: devuelven None y se
    registran en el log.
    """

    def __init__(
        self,
        product_store: Optional[ProductMappingStore] = None,
        order_store: Optional[OrderMappingStore] = None,
        metrics: Optional[MappingMetrics] = None
    ):
        self.metrics = metrics or mapping_metrics
        self.product_store = product_store or ProductMappingStore(metrics=self.metrics)
        self.order_store = order_store or OrderMappingStore()

    def load_mappings(self) -> int:
        """
        Carga los mapeos de productos desde el archivo.

        Returns:
            int: Número de mapeos cargados

        Raises:
            MappingFileError: Si el archivo está corrupto o no se puede leer
        """
        logger.info(f"Cargando mapeos de productos desde {self.product_store.file_path}")
        try:
            count = self.product_store.load()
        except Exception as e:
            logger.error(f"No se pudieron cargar los mapeos de productos: {e}")
            raise
        logger.info(f"Mapeos de productos cargados: {count}")
        return count

    def map_internal_to_external(self, internal_id) -> Optional[str]:
        """ID interno -> ID externo, o None"""
        if not internal_id or not isinstance(internal_id, str):
            logger.warning(f"Intento de mapeo con ID interno inválido: {internal_id!r}")
            return None

        try:
            external_id = self.product_store.get_external_id(internal_id)
        except MappingNotLoadedError as e:
            logger.error(f"Error al mapear {internal_id}: {e}")
            return None

        if external_id is None:
            logger.warning(f"Mapeo no encontrado para el ID interno {internal_id}")
            return None

        logger.debug(f"Mapeo interno -> externo: {internal_id} -> {external_id}")
        return external_id

    def map_external_to_internal(self, external_id) -> Optional[str]:
        """ID externo -> ID interno, o None"""
        if not external_id or not isinstance(external_id, str):
            logger.warning(f"Intento de mapeo con ID externo inválido: {external_id!r}")
            return None

        try:
            internal_id = self.product_store.get_internal_id(external_id)
        except MappingNotLoadedError as e:
            logger.error(f"Error al mapear {external_id}: {e}")
            return None

        if internal_id is None:
            logger.warning(f"Mapeo inverso no encontrado para el ID externo {external_id}")
            return None

        logger.debug(f"Mapeo externo -> interno: {external_id} -> {internal_id}")
        return internal_id

    def save_order_mapping(self, external_order_id: str, internal_order_id: str) -> None:
        logger.info(f"Guardando mapeo de pedido {external_order_id} -> {internal_order_id}")
        self.order_store.save(external_order_id, internal_order_id)

    def get_internal_order_id(self, external_order_id: str) -> Optional[str]:
        """ID del pedido en inventario para un pedido del marketplace"""
        internal_order_id = self.order_store.get(external_order_id)
        if internal_order_id is None:
            logger.warning(f"Mapeo de pedido no encontrado: {external_order_id}")
        return internal_order_id

    def delete_order_mapping(self, external_order_id: str) -> bool:
        logger.info(f"Eliminando mapeo de pedido {external_order_id}")
        return self.order_store.delete(external_order_id)

    def list_internal_ids(self) -> list[str]:
        try:
            return self.product_store.list_internal_ids()
        except MappingNotLoadedError as e:
            logger.error(f"No se pudo listar IDs internos: {e}")
            return []

    def list_external_ids(self) -> list[str]:
        try:
            return self.product_store.list_external_ids()
        except MappingNotLoadedError as e:
            logger.error(f"No se pudo listar IDs externos: {e}")
            return []

    def get_stats(self) -> dict:
        """Estado del almacén más las métricas de lookups"""
        stats = self.product_store.get_stats().model_dump(mode='json')
        stats['metrics'] = self.metrics.get_stats()
        return stats

    def get_summary(self) -> dict:
        return self.metrics.get_summary()
