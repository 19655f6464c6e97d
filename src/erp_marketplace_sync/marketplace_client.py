"""
Cliente de la API REST del marketplace (stock y pedidos).

Cada método hace un único intento; la política de reintentos la aplica
RetryExecutor en los servicios. Los errores se clasifican en
TransientAPIError (429, 5xx, red) y PermanentAPIError (resto).
"""
import logging
from datetime import datetime, timezone
from typing import Optional

import requests
from pydantic import ValidationError

from .config import settings
from .exceptions import PermanentAPIError, TransientAPIError
from .models import MarketplaceOrder, StockUpdate

logger = logging.getLogger(__name__)


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


class MarketplaceClient:
    """
    Cliente HTTP del marketplace.

    Maneja:
    1. Envío de stock por oferta (máximo 2000 por llamada)
    2. Lectura de pedidos filtrados por estado
    """

    MAX_STOCK_BATCH_SIZE = 2000
    MAX_ORDER_PAGES = 50

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        campaign_id: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        self.base_url = (base_url or settings.MARKETPLACE_API_URL).rstrip('/')
        self.campaign_id = campaign_id or settings.MARKETPLACE_CAMPAIGN_ID
        self.timeout = timeout or settings.REQUEST_TIMEOUT_SECONDS
        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f"Bearer {token or settings.MARKETPLACE_TOKEN}",
            'Content-Type': 'application/json',
            'Accept': 'application/json'
        })
        self.total_api_calls = 0

    @property
    def campaign_path(self) -> str:
        return f"/campaigns/{self.campaign_id}"

    def _request(self, method: str, path: str, **kwargs) -> dict:
        """
        Ejecuta una petición y devuelve el JSON de la respuesta.

        Raises:
            TransientAPIError: 429, 5xx, timeout o error de conexión
            PermanentAPIError: Otros 4xx o respuesta no JSON
        """
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")
        self.total_api_calls += 1

        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            logger.error(f"Error de red en {method} {path}: {e}")
            raise TransientAPIError(f"Error de red en {method} {path}: {e}") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Error en la petición {method} {path}: {e}")
            raise PermanentAPIError(f"Error en la petición {method} {path}: {e}") from e

        status = response.status_code
        if status == 429:
            retry_after = _parse_retry_after(response.headers.get('Retry-After'))
            logger.warning(f"Rate limit del marketplace en {path} (Retry-After: {retry_after})")
            raise TransientAPIError(
                f"Rate limit alcanzado en {path}", status_code=429,
                retry_after=retry_after, response_body=response.text
            )
        if status >= 500:
            logger.error(f"Error de servidor {status} en {method} {path}: {response.text[:500]}")
            raise TransientAPIError(
                f"Error de servidor {status} en {path}", status_code=status, response_body=response.text
            )
        if status >= 400:
            logger.error(f"Error {status} en {method} {path}: {response.text[:500]}")
            raise PermanentAPIError(
                f"Error {status} en {path}", status_code=status, response_body=response.text
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise PermanentAPIError(f"Respuesta no JSON en {path}", status_code=status) from e

    def update_stocks(self, updates: list[StockUpdate]) -> dict:
        """
        Envía el stock disponible de varias ofertas.

        Args:
            updates: Lista de actualizaciones (máximo 2000)

        Returns:
            dict con la respuesta de la API

        Raises:
            ValueError: Si se superan las 2000 ofertas
        """
        if len(updates) > self.MAX_STOCK_BATCH_SIZE:
            raise ValueError(
                f"Máximo {self.MAX_STOCK_BATCH_SIZE} items por llamada, recibidos: {len(updates)}"
            )
        if not updates:
            logger.warning("No hay actualizaciones de stock para enviar")
            return {}

        updated_at = datetime.now(timezone.utc).isoformat()
        payload = {
            "skus": [
                {
                    "sku": update.external_id,
                    "warehouseId": update.warehouse_id,
                    "items": [{
                        "count": update.count,
                        "type": "FIT",
                        "updatedAt": updated_at
                    }]
                }
                for update in updates
            ]
        }

        data = self._request('PUT', f"{self.campaign_path}/offers/stocks", json=payload)
        logger.info(f"Stock enviado al marketplace: {len(updates)} ofertas")
        return data

    def get_orders(self, status: str) -> list[MarketplaceOrder]:
        """
        Obtiene los pedidos con un estado dado, recorriendo todas las páginas.

        Los pedidos que no pasan la validación se omiten y se registran.
        """
        orders: list[MarketplaceOrder] = []
        page = 1

        while page <= self.MAX_ORDER_PAGES:
            data = self._request('GET', f"{self.campaign_path}/orders", params={"status": status, "page": page})

            for raw in data.get('orders') or []:
                try:
                    orders.append(MarketplaceOrder(**raw))
                except ValidationError as e:
                    logger.warning(f"Pedido inválido omitido ({raw.get('id')}): {e}")

            pages_count = (data.get('pager') or {}).get('pagesCount') or 1
            if page >= pages_count:
                break
            if page >= self.MAX_ORDER_PAGES:
                logger.warning(
                    f"Pedidos con estado {status}: {pages_count} páginas, solo se leen las "
                    f"primeras {self.MAX_ORDER_PAGES}. El resto se leerá en el próximo polling."
                )
                break
            page += 1

        logger.info(f"Se obtuvieron {len(orders)} pedidos con estado {status}")
        return orders

    def test_connection(self) -> bool:
        """
        Prueba la conexión con el marketplace.

        Returns:
            True si la campaña es accesible
        """
        try:
            self._request('GET', self.campaign_path)
            logger.info(f"✓ Conexión exitosa con el marketplace (campaña {self.campaign_id})")
            return True
        except (TransientAPIError, PermanentAPIError) as e:
            logger.error(f"✗ Error al conectar con el marketplace: {e}")
            return False

    def get_stats(self) -> dict:
        return {"total_api_calls": self.total_api_calls}
