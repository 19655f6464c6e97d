"""
Punto de entrada principal del conector ERP-Marketplace.
"""
import uvicorn

from .config import settings


def main():
    """
    Ejecuta el servidor FastAPI con uvicorn.
    """
    uvicorn.run(
        "erp_marketplace_sync.api:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=False,  # El scheduler debe vivir en un único proceso
        log_level=settings.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    main()
