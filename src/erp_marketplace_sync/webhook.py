"""
Endpoint de webhooks del sistema de inventario.

Responde 200 para cualquier resultado de negocio (el emisor no debe
reintentar en bucle); solo un Content-Type inválido (401) o un body vacío
(400) se rechazan. El trabajo de sincronización se ejecuta en segundo plano:
un 200 no implica que el stock se haya enviado.
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, status

from .config import settings

logger = logging.getLogger(__name__)

STOCK_ENTITY_TYPES = ("product", "stock", "enter", "loss", "move", "customerorder", "demand")
STOCK_ACTIONS = ("CREATE", "UPDATE", "DELETE")

router = APIRouter(tags=["webhook"])


def validate_webhook(content_type: Optional[str], user_agent: Optional[str]) -> bool:
    """
    Validación básica del webhook.

    El User-Agent solo se registra si no coincide: no es una garantía de
    autenticidad.
    TODO: verificar una firma HMAC del body cuando el emisor la soporte.
    """
    hint = settings.WEBHOOK_USER_AGENT_HINT.lower()
    if hint and hint not in (user_agent or "").lower():
        logger.warning(f"Webhook de origen desconocido (User-Agent: {user_agent!r})")

    if "application/json" not in (content_type or "").lower():
        logger.warning(f"Webhook con Content-Type inválido: {content_type!r}")
        return False
    return True


def is_stock_change_event(event: dict) -> bool:
    """Indica si un evento afecta al stock (tipo de entidad y acción permitidos)"""
    meta = event.get("meta") if isinstance(event.get("meta"), dict) else {}
    entity_type = meta.get("type") or event.get("entityType")
    action = event.get("action")

    if not entity_type or not isinstance(entity_type, str):
        return False

    entity_type = entity_type.lower()
    is_stock_related = any(t in entity_type for t in STOCK_ENTITY_TYPES)
    return is_stock_related and action in STOCK_ACTIONS


def _id_from_href(href) -> Optional[str]:
    if not href or not isinstance(href, str):
        return None
    return href.rstrip("/").split("/")[-1] or None


def extract_internal_ids(payload: dict) -> list[str]:
    """
    Extrae los IDs internos de los eventos de stock de un webhook.

    Acepta la lista `events` y el formato antiguo con `meta.href` en la raíz.
    Los IDs se devuelven sin duplicados y en orden de aparición.

    Raises:
        ValueError: Si el payload no tiene una estructura reconocible
    """
    if not isinstance(payload, dict):
        raise ValueError("El payload del webhook debe ser un objeto JSON")

    events = payload.get("events")
    if events is None and isinstance(payload.get("meta"), dict):
        events = [payload]
    if not isinstance(events, list):
        raise ValueError("El webhook no contiene una lista de eventos")

    internal_ids: list[str] = []
    for event in events:
        if not isinstance(event, dict):
            logger.warning(f"Evento de webhook inválido omitido: {event!r}")
            continue
        if not is_stock_change_event(event):
            logger.debug(f"Evento no relacionado con stock: {event.get('action')} {event.get('meta')}")
            continue

        internal_id = _id_from_href((event.get("meta") or {}).get("href"))
        if not internal_id:
            logger.warning(f"Evento de webhook sin meta.href: {event!r}")
            continue
        if internal_id not in internal_ids:
            internal_ids.append(internal_id)

    return internal_ids


def get_stock_service(request: Request):
    return request.app.state.stock_service


@router.post("/webhook/inventory")
async def inventory_webhook(request: Request, background_tasks: BackgroundTasks):
    """
    Recibe cambios de stock del inventario y los propaga en segundo plano.
    """
    content_type = request.headers.get("content-type")
    user_agent = request.headers.get("user-agent")
    logger.info(f"Webhook recibido (Content-Type: {content_type}, User-Agent: {user_agent})")

    if not validate_webhook(content_type, user_agent):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Validación del webhook fallida"
        )

    body = await request.body()
    if not body.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="El webhook no contiene datos")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="El body del webhook no es JSON válido")

    if not payload:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="El webhook no contiene datos")

    try:
        internal_ids = extract_internal_ids(payload)
    except ValueError as e:
        logger.error(f"Error al procesar el webhook: {e}")
        return {"status": "error", "message": str(e)}

    if not internal_ids:
        logger.info("Webhook sin eventos de stock. Ignorado.")
        return {"status": "ignored", "message": "No es un evento de cambio de stock"}

    stock_service = get_stock_service(request)
    for internal_id in internal_ids:
        background_tasks.add_task(stock_service.handle_webhook_update, internal_id)

    logger.info(f"Webhook aceptado: {len(internal_ids)} productos en cola")
    return {
        "status": "accepted",
        "message": "Webhook recibido, procesando en segundo plano",
        "internal_ids": internal_ids
    }
