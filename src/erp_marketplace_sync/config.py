"""
Configuración del conector ERP-Marketplace.

Carga las variables de entorno necesarias para la operación del conector.
"""
from pydantic_settings import BaseSettings
from pydantic import Field, validator


class Settings(BaseSettings):
    """
    Configuración de la aplicación cargada desde variables de entorno.
    """
    # Configuración del sistema de inventario (ERP)
    INVENTORY_API_URL: str = Field(
        default="https://api.moysklad.ru/api/remap/1.2",
        description="URL base de la API REST del sistema de inventario"
    )
    INVENTORY_TOKEN: str = Field(
        ...,
        description="Token Bearer de la API de inventario"
    )

    # Configuración del marketplace
    MARKETPLACE_API_URL: str = Field(
        default="https://api.partner.market.yandex.ru",
        description="URL base de la API del marketplace"
    )
    MARKETPLACE_TOKEN: str = Field(
        ...,
        description="Token Bearer de la API del marketplace"
    )
    MARKETPLACE_CAMPAIGN_ID: str = Field(
        ...,
        description="ID de la campaña (tienda) en el marketplace"
    )
    MARKETPLACE_WAREHOUSE_ID: int = Field(
        default=0,
        description="ID del almacén del marketplace al que se envía el stock"
    )

    # Archivos de mapeo
    PRODUCT_MAPPING_FILE: str = Field(
        default="./data/product-mappings.json",
        description="Ruta del archivo de mapeo de productos (interno -> externo)"
    )
    ORDER_MAPPING_FILE: str = Field(
        default="./data/order-mappings.json",
        description="Ruta del archivo de mapeo de pedidos (externo -> interno)"
    )

    # Intervalos del scheduler
    STOCK_SYNC_INTERVAL_MINUTES: int = Field(
        default=10,
        description="Intervalo del barrido completo de stock (minutos)"
    )
    ORDER_POLL_INTERVAL_MINUTES: int = Field(
        default=5,
        description="Intervalo del polling de pedidos (minutos)"
    )
    SCHEDULER_ENABLED: bool = Field(
        default=True,
        description="Activa las tareas periódicas al arrancar el servidor"
    )

    # Red y bloqueo de archivos
    REQUEST_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Timeout de cada llamada HTTP saliente"
    )
    LOCK_TIMEOUT_SECONDS: float = Field(
        default=5.0,
        description="Tiempo máximo de espera para obtener el lock de un archivo de mapeo"
    )
    LOCK_CHECK_INTERVAL_SECONDS: float = Field(
        default=0.05,
        description="Intervalo entre intentos de obtener el lock"
    )

    # Webhook
    WEBHOOK_USER_AGENT_HINT: str = Field(
        default="moysklad",
        description="Fragmento esperado en el User-Agent del webhook (solo se registra si no coincide)"
    )

    # Configuración del servidor
    HOST: str = Field(
        default="0.0.0.0",
        description="Host donde escuchará el servidor FastAPI"
    )
    PORT: int = Field(
        default=8000,
        description="Puerto donde escuchará el servidor FastAPI"
    )

    # Configuración de logging
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Nivel de logging (DEBUG, INFO, WARNING, ERROR)"
    )

    @validator('INVENTORY_API_URL', 'MARKETPLACE_API_URL')
    def validate_api_url(cls, v):
        """Valida que las URLs de las APIs tengan el formato correcto"""
        if not v.startswith('https://'):
            raise ValueError("Las URLs de API deben comenzar con https://")
        return v.rstrip('/')

    @validator('STOCK_SYNC_INTERVAL_MINUTES', 'ORDER_POLL_INTERVAL_MINUTES')
    def validate_interval(cls, v):
        """Los intervalos deben ser de al menos 1 minuto"""
        if v < 1:
            raise ValueError("Los intervalos del scheduler deben ser de al menos 1 minuto")
        return v

    @validator('LOCK_TIMEOUT_SECONDS', 'LOCK_CHECK_INTERVAL_SECONDS', 'REQUEST_TIMEOUT_SECONDS')
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("Los timeouts deben ser positivos")
        return v

    @validator('LOG_LEVEL')
    def validate_log_level(cls, v):
        """Valida que el nivel de log sea válido"""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL debe ser uno de: {valid_levels}")
        return v.upper()

    def to_safe_dict(self) -> dict:
        """Configuración apta para logs (sin credenciales)"""
        data = self.model_dump()
        for key in ('INVENTORY_TOKEN', 'MARKETPLACE_TOKEN'):
            data[key] = '[REDACTED]'
        return data

    class Config:
        """Configuración de Pydantic Settings"""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Instancia global de configuración
settings = Settings()
