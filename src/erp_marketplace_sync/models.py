"""
Modelos Pydantic para validación de datos del conector ERP-Marketplace.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, validator


class ProductMapping(BaseModel):
    """
    Par de identificadores de un producto: interno (inventario) y externo (marketplace).
    """
    internal_id: str = Field(description="ID del producto en el sistema de inventario", min_length=1)
    external_id: str = Field(description="ID de la oferta en el marketplace", min_length=1)

    class Config:
        """Configuración del modelo"""
        json_schema_extra = {
            "example": {
                "internal_id": "f8a2da33-bf0a-11ef-0a80-17e3002d7201",
                "external_id": "OFF-500-KARITE"
            }
        }


class OrderMapping(BaseModel):
    """
    Registro del archivo de mapeo de pedidos.
    """
    external_order_id: str = Field(alias="externalOrderId", description="ID del pedido en el marketplace")
    internal_order_id: str = Field(alias="internalOrderId", description="ID del pedido en inventario")
    created_at: datetime = Field(alias="createdAt", description="Fecha de creación del mapeo")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt", description="Última actualización")
    shipped_at: Optional[datetime] = Field(default=None, alias="shippedAt", description="Fecha de creación del envío en inventario")

    class Config:
        """Configuración del modelo"""
        populate_by_name = True


class MappingStoreStats(BaseModel):
    """Estado del almacén de mapeos de productos"""
    total_mappings: int = Field(description="Mapeos cargados en memoria")
    last_loaded: Optional[datetime] = Field(default=None, description="Fecha de la última carga")
    is_loaded: bool = Field(description="Indica si se llamó a load()")
    version: int = Field(default=0, description="Número de cargas realizadas")
    file_path: str = Field(description="Ruta del archivo de mapeo")


class StockLevel(BaseModel):
    """
    Stock de un producto en inventario, sumado sobre todos los almacenes.
    """
    product_id: str = Field(description="ID del producto en inventario")
    total_stock: int = Field(description="Stock físico")
    total_reserve: int = Field(description="Stock reservado")
    available_stock: int = Field(description="Stock disponible (físico - reservado)")


class StockUpdate(BaseModel):
    """
    Actualización de stock a enviar al marketplace.
    """
    external_id: str = Field(description="ID de la oferta en el marketplace")
    count: int = Field(description="Cantidad disponible", ge=0)
    warehouse_id: int = Field(default=0, description="ID del almacén en el marketplace")

    class Config:
        """Configuración del modelo"""
        json_schema_extra = {
            "example": {
                "external_id": "OFF-500-KARITE",
                "count": 13,
                "warehouse_id": 0
            }
        }


class ItemError(BaseModel):
    """Error aislado de un ítem dentro de un barrido"""
    item_id: Optional[str] = Field(default=None, description="ID del producto o pedido que falló")
    error: str = Field(description="Mensaje de error")
    type: Optional[str] = Field(default=None, description="Categoría del error (ej: polling_error)")


class SyncStats(BaseModel):
    """
    Resultado de un barrido completo de stock.

    Se cumple siempre synced + skipped + len(errors) == total.
    """
    total: int = Field(default=0, description="Productos considerados")
    synced: int = Field(default=0, description="Productos enviados al marketplace")
    skipped: int = Field(default=0, description="Productos omitidos (sin mapeo)")
    errors: list[ItemError] = Field(default_factory=list, description="Errores por producto")
    total_time_seconds: float = Field(default=0.0, description="Duración del barrido")

    @property
    def is_complete(self) -> bool:
        """Verifica el contrato de completitud del barrido"""
        return self.synced + self.skipped + len(self.errors) == self.total


class OrderSyncStats(BaseModel):
    """
    Resultado de un polling de pedidos o de envíos.
    """
    processed: int = Field(default=0, description="Pedidos procesados en esta pasada")
    successful: int = Field(default=0, description="Pedidos procesados con éxito")
    failed: int = Field(default=0, description="Pedidos que fallaron")
    errors: list[ItemError] = Field(default_factory=list, description="Errores por pedido")


class MarketplaceOrderItem(BaseModel):
    """Posición de un pedido del marketplace"""
    offer_id: Optional[str] = Field(default=None, alias="offerId", description="ID externo del producto")
    count: int = Field(default=1, description="Cantidad pedida", ge=0)
    price: Decimal = Field(default=Decimal("0"), description="Precio unitario en unidad monetaria mayor")
    shop_sku: Optional[str] = Field(default=None, alias="shopSku")
    offer_name: Optional[str] = Field(default=None, alias="offerName")

    class Config:
        """Configuración del modelo"""
        populate_by_name = True


class DeliveryAddress(BaseModel):
    postcode: Optional[str] = None
    city: Optional[str] = None
    street: Optional[str] = None
    house: Optional[str] = None
    building: Optional[str] = None
    apartment: Optional[str] = None


class Recipient(BaseModel):
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    phone: Optional[str] = None

    class Config:
        populate_by_name = True


class DeliveryInfo(BaseModel):
    address: Optional[DeliveryAddress] = None
    recipient: Optional[Recipient] = None


class MarketplaceOrder(BaseModel):
    """
    Pedido del marketplace tal como lo devuelve la API de pedidos.
    """
    id: str = Field(description="ID del pedido en el marketplace")
    status: Optional[str] = Field(default=None, description="Estado del pedido (PROCESSING, SHIPPED, ...)")
    items: list[MarketplaceOrderItem] = Field(default_factory=list, description="Posiciones del pedido")
    delivery: Optional[DeliveryInfo] = Field(default=None, description="Datos de entrega")

    @validator('id', pre=True)
    def coerce_id(cls, v):
        """El marketplace devuelve IDs numéricos"""
        if v is None or str(v).strip() == "":
            raise ValueError("El pedido debe tener id")
        return str(v)

    class Config:
        """Configuración del modelo"""
        json_schema_extra = {
            "example": {
                "id": "45120934",
                "status": "PROCESSING",
                "items": [{"offerId": "OFF1", "count": 2, "price": 199.99}]
            }
        }
