"""
Excepciones del conector ERP-Marketplace.

Los fallos de un ítem dentro de un barrido se aíslan y se agregan a las
estadísticas; solo los errores de carga inicial detienen el arranque.
"""
from typing import Optional


class SyncError(Exception):
    """Excepción base del conector"""
    pass


# --- Archivos de mapeo ---

class MappingValidationError(SyncError):
    """Registro de mapeo inválido (ids vacíos, no string o duplicados)"""
    pass


class MappingFileError(SyncError):
    """Error de E/S o de parseo de un archivo de mapeo"""

    def __init__(self, message: str, file_path: Optional[str] = None):
        self.file_path = file_path
        super().__init__(message)


class MappingStructureError(MappingFileError):
    """El archivo de mapeo no tiene las claves obligatorias (version, mappings)"""
    pass


class MappingNotLoadedError(SyncError):
    """Se consultó el mapeo antes de llamar a load()"""
    pass


class LockTimeoutError(SyncError):
    """No se obtuvo el lock del archivo dentro del timeout: la escritura no ocurrió"""

    def __init__(self, lock_path: str, timeout: float):
        self.lock_path = lock_path
        self.timeout = timeout
        super().__init__(f"No se pudo obtener el lock {lock_path} en {timeout}s")


# --- APIs externas ---

class APIError(SyncError):
    """Error en una llamada a una API externa"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        response_body: Optional[str] = None
    ):
        self.status_code = status_code
        self.retry_after = retry_after
        self.response_body = response_body
        super().__init__(message)


class TransientAPIError(APIError):
    """429, 5xx o error de red: se reintenta"""
    pass


class PermanentAPIError(APIError):
    """4xx distinto de 429 o respuesta inválida: no se reintenta"""
    pass


class InventoryAPIError(APIError):
    """Error al comunicarse con el sistema de inventario"""

    def __init__(self, message: str, status_code: Optional[int] = None, transient: bool = False,
                 response_body: Optional[str] = None):
        self.transient = transient
        super().__init__(message, status_code=status_code, response_body=response_body)


# --- Sincronización ---

class StockValidationError(SyncError):
    """Valor de stock inválido para enviar al marketplace"""
    pass


class UnmappableOrderError(SyncError):
    """Ninguna posición del pedido tiene mapeo: queda para gestión manual"""

    def __init__(self, external_order_id: str, external_ids: list[str]):
        self.external_order_id = external_order_id
        self.external_ids = external_ids
        super().__init__(
            f"El pedido {external_order_id} no contiene ninguna posición mapeada "
            f"({len(external_ids)} sin mapeo). Se deja para gestión manual."
        )


class OrderMappingNotFoundError(SyncError):
    """No existe mapeo del pedido externo: nunca se creó en inventario"""

    def __init__(self, external_order_id: str):
        self.external_order_id = external_order_id
        super().__init__(
            f"No existe mapeo para el pedido {external_order_id}. "
            f"No se puede crear el envío de un pedido desconocido."
        )
