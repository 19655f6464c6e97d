"""
Cliente para interactuar con la API REST del sistema de inventario (ERP).
"""
import logging
from typing import Optional

import requests

from .config import settings
from .exceptions import InventoryAPIError
from .models import StockLevel

logger = logging.getLogger(__name__)


class InventoryClient:
    """
    Cliente para la API JSON del sistema de inventario.

    Este cliente lee stock por producto y crea pedidos de cliente y envíos.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        """Inicializa el cliente de inventario"""
        self.base_url = (base_url or settings.INVENTORY_API_URL).rstrip('/')
        self.timeout = timeout or settings.REQUEST_TIMEOUT_SECONDS
        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f"Bearer {token or settings.INVENTORY_TOKEN}",
            'Accept-Encoding': 'gzip',
            'Content-Type': 'application/json'
        })

    def entity_href(self, entity: str, entity_id: str) -> str:
        """URL de una entidad, usada como referencia en los payloads"""
        return f"{self.base_url}/entity/{entity}/{entity_id}"

    def entity_meta(self, entity: str, entity_id: str) -> dict:
        return {
            "meta": {
                "href": self.entity_href(entity, entity_id),
                "type": entity,
                "mediaType": "application/json"
            }
        }

    def _request(self, method: str, path: str, **kwargs) -> dict:
        """
        Ejecuta una petición contra la API de inventario.

        Raises:
            InventoryAPIError: Ante cualquier error de red o de estado HTTP
        """
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")

        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            error_msg = f"Error de red en {method} {path}: {e}"
            logger.error(error_msg)
            raise InventoryAPIError(error_msg, transient=True) from e
        except requests.exceptions.RequestException as e:
            error_msg = f"Error en la petición {method} {path}: {e}"
            logger.error(error_msg)
            raise InventoryAPIError(error_msg) from e

        if response.status_code >= 400:
            error_msg = f"Error {response.status_code} en {method} {path}: {response.text[:500]}"
            logger.error(error_msg)
            raise InventoryAPIError(
                error_msg,
                status_code=response.status_code,
                transient=response.status_code == 429 or response.status_code >= 500,
                response_body=response.text
            )

        try:
            return response.json()
        except ValueError as e:
            raise InventoryAPIError(f"Respuesta no JSON en {path}", status_code=response.status_code) from e

    def get_product_stock(self, product_id: str) -> StockLevel:
        """
        Obtiene el stock de un producto sumado sobre todos los almacenes.

        Args:
            product_id: ID del producto en inventario

        Returns:
            StockLevel con disponible = físico - reservado

        Raises:
            InventoryAPIError: Si hay error en la consulta
        """
        params = {"filter": f"product={self.entity_href('product', product_id)}"}
        data = self._request('GET', '/report/stock/bystore', params=params)
        rows = data.get('rows') or []

        total_stock = sum(row.get('stock') or 0 for row in rows)
        total_reserve = sum(row.get('reserve') or 0 for row in rows)

        stock = StockLevel(
            product_id=product_id,
            total_stock=int(total_stock),
            total_reserve=int(total_reserve),
            available_stock=int(total_stock - total_reserve)
        )
        logger.debug(
            f"Stock de {product_id}: físico={stock.total_stock}, reservado={stock.total_reserve}, "
            f"disponible={stock.available_stock}"
        )
        return stock

    def create_customer_order(self, order_data: dict) -> dict:
        """
        Crea un pedido de cliente con reserva de stock.

        Returns:
            dict con el pedido creado (incluye 'id')
        """
        logger.debug(
            f"Creando pedido de cliente {order_data.get('name')} "
            f"({len(order_data.get('positions', []))} posiciones)"
        )
        order = self._request('POST', '/entity/customerorder', json=order_data)
        if not order.get('id'):
            raise InventoryAPIError("La respuesta de creación de pedido no contiene id")
        logger.info(f"Pedido de cliente creado: {order.get('name')} (ID: {order['id']})")
        return order

    def create_shipment(self, shipment_data: dict) -> dict:
        """Crea un envío (demand) vinculado a un pedido de cliente"""
        shipment = self._request('POST', '/entity/demand', json=shipment_data)
        logger.info(f"Envío creado: {shipment.get('name')} (ID: {shipment.get('id')})")
        return shipment

    def test_connection(self) -> bool:
        """
        Prueba la conexión con el sistema de inventario.

        Returns:
            True si la conexión es exitosa
        """
        try:
            self._request('GET', '/entity/organization', params={"limit": 1})
            logger.info(f"✓ Conexión exitosa con inventario: {self.base_url}")
            return True
        except InventoryAPIError as e:
            logger.error(f"✗ Error al conectar con inventario: {e}")
            return False
