"""
Conector ERP-Marketplace.

Sincroniza el stock disponible del inventario hacia el marketplace (webhook
más barrido periódico) y los pedidos del marketplace hacia el inventario
(polling), sobre un mapeo de identificadores persistido en archivo.
"""
from .config import settings
from .mapper_service import MapperService
from .product_mapping_store import ProductMappingStore, MappingSnapshot
from .order_mapping_store import OrderMappingStore
from .retry import RetryExecutor
from .stock_service import StockService
from .order_service import OrderService
from .models import (
    OrderMapping,
    StockLevel,
    StockUpdate,
    SyncStats,
    OrderSyncStats,
    MarketplaceOrder,
)

__version__ = "1.0.0"
__all__ = [
    "settings",
    "MapperService",
    "ProductMappingStore",
    "MappingSnapshot",
    "OrderMappingStore",
    "RetryExecutor",
    "StockService",
    "OrderService",
    "OrderMapping",
    "StockLevel",
    "StockUpdate",
    "SyncStats",
    "OrderSyncStats",
    "MarketplaceOrder",
]
