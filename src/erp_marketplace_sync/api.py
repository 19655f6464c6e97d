"""
API FastAPI del conector ERP-Marketplace.

Provee el webhook de stock, los endpoints de sincronización manual y
administración de mapeos, y arranca las tareas periódicas.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, status, BackgroundTasks
from fastapi.responses import JSONResponse

from .config import settings
from .exceptions import LockTimeoutError, MappingFileError
from .mapper_service import MapperService
from .models import OrderSyncStats, SyncStats
from .order_service import OrderService
from .scheduler import SyncScheduler
from .stock_service import StockService
from .webhook import router as webhook_router

# Configurar logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"

# Servicios compartidos (singleton)
mapper = MapperService()
stock_service = StockService(mapper=mapper)
order_service = OrderService(mapper=mapper)
scheduler = SyncScheduler()


def run_order_cycle():
    """Ciclo de pedidos: pedidos nuevos y luego envíos"""
    order_service.poll_and_process_orders()
    order_service.process_shipped_orders()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifecycle manager para FastAPI.

    Un archivo de mapeo corrupto impide el arranque.
    """
    logger.info("Iniciando conector ERP-Marketplace...")
    logger.info(f"Configuración: {settings.to_safe_dict()}")

    mapper.load_mappings()

    if settings.SCHEDULER_ENABLED:
        scheduler.schedule_stock_sync(settings.STOCK_SYNC_INTERVAL_MINUTES, stock_service.full_sweep)
        scheduler.schedule_order_polling(settings.ORDER_POLL_INTERVAL_MINUTES, run_order_cycle)
    else:
        logger.info("Scheduler desactivado (SCHEDULER_ENABLED=false)")

    yield

    scheduler.stop_all()
    logger.info("Apagando conector ERP-Marketplace...")


# Crear aplicación FastAPI
app = FastAPI(
    title="Conector ERP-Marketplace",
    description="Sincroniza stock del inventario al marketplace y pedidos del marketplace al inventario",
    version=VERSION,
    lifespan=lifespan
)
app.state.stock_service = stock_service
app.include_router(webhook_router)


@app.get("/")
async def root():
    """
    Endpoint raíz para verificar que la API está funcionando.
    """
    return {
        "service": "ERP-Marketplace Sync Connector",
        "status": "running",
        "version": VERSION,
        "mappings_loaded": mapper.product_store.is_loaded
    }


@app.get("/health")
async def health_check():
    """
    Health check endpoint.
    """
    return {"status": "healthy"}


@app.get("/test-connections")
def test_connections():
    """
    Prueba las conexiones con el inventario y el marketplace.
    """
    logger.info("Probando conexiones...")
    inventory_ok = stock_service.inventory_client.test_connection()
    marketplace_ok = stock_service.marketplace_client.test_connection()

    return {
        "inventory": {"status": "OK" if inventory_ok else "ERROR", "url": settings.INVENTORY_API_URL},
        "marketplace": {"status": "OK" if marketplace_ok else "ERROR", "url": settings.MARKETPLACE_API_URL},
        "overall": "OK" if inventory_ok and marketplace_ok else "ERROR"
    }


@app.get("/mapping/stats")
async def mapping_stats():
    """Estadísticas del almacén de mapeos y métricas de lookup"""
    return mapper.get_stats()


@app.get("/mapping/summary")
async def mapping_summary():
    return mapper.get_summary()


@app.post("/mapping/reload")
def reload_mappings():
    """
    Recarga los mapeos de productos desde el archivo.

    Si el archivo está corrupto se conservan los mapeos actuales.
    """
    try:
        count = mapper.load_mappings()
    except (MappingFileError, LockTimeoutError) as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error al recargar mapeos: {str(e)}"
        )
    return {"success": True, "total_mappings": count}


@app.post("/sync/stocks", response_model=SyncStats)
def sync_stocks() -> SyncStats:
    """
    Ejecuta el barrido completo de stock y devuelve las estadísticas.

    Los errores por producto se devuelven en `errors`; el barrido no se interrumpe.
    """
    logger.info("Iniciando barrido de stock manual...")
    try:
        return stock_service.full_sweep()
    except Exception as e:
        logger.exception(f"Error inesperado durante el barrido de stock: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error interno del servidor: {str(e)}"
        )


@app.post("/sync/stocks/async")
async def sync_stocks_async(background_tasks: BackgroundTasks):
    """
    Inicia el barrido de stock en segundo plano.
    """
    logger.info("Iniciando barrido de stock en background...")

    def run_sweep():
        try:
            stats = stock_service.full_sweep()
            logger.info(
                f"Barrido background completado: {stats.synced}/{stats.total} sincronizados, "
                f"{len(stats.errors)} errores"
            )
        except Exception as e:
            logger.exception(f"Error en barrido background: {e}")

    background_tasks.add_task(run_sweep)

    return {
        "message": "Barrido de stock iniciado en segundo plano",
        "status": "processing"
    }


@app.post("/sync/orders", response_model=OrderSyncStats)
def sync_orders() -> OrderSyncStats:
    """Polling manual de pedidos nuevos"""
    return order_service.poll_and_process_orders()


@app.post("/sync/shipments", response_model=OrderSyncStats)
def sync_shipments() -> OrderSyncStats:
    """Polling manual de pedidos enviados"""
    return order_service.process_shipped_orders()


@app.post("/orders/processed/clear")
async def clear_processed_orders():
    """
    Vacía la caché de pedidos procesados.

    El siguiente polling volverá a evaluar todos los pedidos; los que ya
    tienen mapeo no se crean de nuevo.
    """
    order_service.clear_processed_orders()
    return {"success": True, "message": "Caché de pedidos procesados vaciada"}


@app.get("/scheduler/status")
async def scheduler_status():
    return {
        "enabled": settings.SCHEDULER_ENABLED,
        "jobs": scheduler.get_status(),
        "orders": order_service.get_stats()
    }


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """
    Handler personalizado para HTTPException.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": exc.detail
        }
    )
