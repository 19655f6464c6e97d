"""
Fixtures compartidas de los tests.

Las variables de entorno obligatorias se definen antes de importar el
paquete para que `settings` se pueda instanciar sin un archivo .env.
"""
import json
import os

os.environ.setdefault("INVENTORY_TOKEN", "test-inventory-token")
os.environ.setdefault("MARKETPLACE_TOKEN", "test-marketplace-token")
os.environ.setdefault("MARKETPLACE_CAMPAIGN_ID", "12345")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest
from unittest.mock import MagicMock

from erp_marketplace_sync.mapper_service import MapperService
from erp_marketplace_sync.metrics import MappingMetrics
from erp_marketplace_sync.order_mapping_store import OrderMappingStore
from erp_marketplace_sync.product_mapping_store import ProductMappingStore
from erp_marketplace_sync.retry import RetryExecutor


# ===================
# ARCHIVOS DE MAPEO
# ===================

@pytest.fixture
def mapping_path(tmp_path):
    return tmp_path / "product-mappings.json"


@pytest.fixture
def write_mappings(mapping_path):
    """Escribe un archivo de mapeo de productos con el formato esperado"""
    def _write(mappings, version="1.0"):
        document = {"version": version, "lastUpdated": "2026-01-01T00:00:00+00:00", "mappings": mappings}
        mapping_path.write_text(json.dumps(document), encoding="utf-8")
        return mapping_path
    return _write


@pytest.fixture
def metrics():
    return MappingMetrics()


@pytest.fixture
def product_store(mapping_path, metrics):
    return ProductMappingStore(
        file_path=str(mapping_path),
        lock_timeout=0.2,
        lock_check_interval=0.01,
        metrics=metrics
    )


@pytest.fixture
def order_store(tmp_path):
    return OrderMappingStore(
        file_path=str(tmp_path / "order-mappings.json"),
        lock_timeout=0.2,
        lock_check_interval=0.01
    )


@pytest.fixture
def mapper(product_store, order_store, metrics):
    return MapperService(product_store=product_store, order_store=order_store, metrics=metrics)


# ===================
# REINTENTOS Y HTTP
# ===================

@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def retry_executor(sleeps):
    """RetryExecutor que registra las esperas en lugar de dormir"""
    return RetryExecutor(base_delay=1.0, sleep=sleeps.append)


def make_response(status_code=200, payload=None, headers=None):
    """Respuesta HTTP simulada para un requests.Session mockeado"""
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.json.return_value = payload
    response.content = json.dumps(payload).encode() if payload is not None else b""
    response.text = json.dumps(payload) if payload is not None else ""
    return response


@pytest.fixture
def mock_session():
    session = MagicMock()
    session.headers = {}
    return session


@pytest.fixture
def response_factory():
    return make_response
