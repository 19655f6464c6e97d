"""
Almacén en archivo del mapeo de pedidos: ID externo -> ID interno.

Formato del archivo:

    {"mappings": [{"externalOrderId": "...", "internalOrderId": "...",
                   "createdAt": "...", "updatedAt": "...",
                   "shippedAt": "..."}]}

Lista ordenada para permitir el upsert por recorrido (la primera coincidencia
se actualiza). Sin caché: cada lectura va al disco.
`shippedAt` solo existe cuando ya se creó el envío del pedido en inventario.
"""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .config import settings
from .exceptions import LockTimeoutError, MappingFileError, MappingValidationError
from .file_lock import FileLock, write_json_atomic
from .models import OrderMapping

logger = logging.getLogger(__name__)


class OrderMappingStore:
    """Almacén de mapeos de pedidos con upsert bajo lock"""

    def __init__(
        self,
        file_path: Optional[str] = None,
        lock_timeout: Optional[float] = None,
        lock_check_interval: Optional[float] = None
    ):
        self.file_path = Path(file_path or settings.ORDER_MAPPING_FILE).resolve()
        self.lock_timeout = lock_timeout if lock_timeout is not None else settings.LOCK_TIMEOUT_SECONDS
        self.lock_check_interval = (
            lock_check_interval if lock_check_interval is not None else settings.LOCK_CHECK_INTERVAL_SECONDS
        )

    def _lock(self) -> FileLock:
        return FileLock(self.file_path, timeout=self.lock_timeout, check_interval=self.lock_check_interval)

    def _read_records(self) -> list[dict]:
        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except json.JSONDecodeError as e:
            logger.error(f"JSON inválido en el archivo de pedidos {self.file_path}: {e}")
            raise MappingFileError(f"JSON inválido en el archivo de pedidos: {e}", str(self.file_path))
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"No se pudo leer el archivo de pedidos {self.file_path}: {e}")
            raise MappingFileError(f"Error al leer el archivo de pedidos: {e}", str(self.file_path))

        records = data.get('mappings', []) if isinstance(data, dict) else []
        if not isinstance(records, list):
            raise MappingFileError("El campo mappings debe ser una lista", str(self.file_path))
        return records

    def save(self, external_order_id: str, internal_order_id: str) -> None:
        """
        Guarda o actualiza el mapeo de un pedido.

        Un mismo ID externo nunca se duplica: si existe se actualizan
        internalOrderId y updatedAt.

        Raises:
            MappingValidationError: Si falta alguno de los IDs
            LockTimeoutError: Si no se obtuvo el lock (no se escribió nada)
        """
        if not external_order_id or not internal_order_id:
            raise MappingValidationError("Se requieren external_order_id e internal_order_id")

        external_order_id = str(external_order_id)
        internal_order_id = str(internal_order_id)
        now = datetime.now(timezone.utc).isoformat()

        try:
            with self._lock():
                records = self._read_records()

                existing = next(
                    (r for r in records if r.get('externalOrderId') == external_order_id), None
                )
                if existing is not None:
                    existing['internalOrderId'] = internal_order_id
                    existing['updatedAt'] = now
                    logger.info(f"Mapeo de pedido actualizado: {external_order_id} -> {internal_order_id}")
                else:
                    records.append({
                        'externalOrderId': external_order_id,
                        'internalOrderId': internal_order_id,
                        'createdAt': now,
                    })
                    logger.info(f"Mapeo de pedido guardado: {external_order_id} -> {internal_order_id}")

                write_json_atomic(self.file_path, {'mappings': records})
        except LockTimeoutError:
            logger.error(f"No se guardó el mapeo del pedido {external_order_id}: lock ocupado")
            raise
        except OSError as e:
            logger.error(f"Error al guardar el mapeo del pedido {external_order_id}: {e}")
            raise MappingFileError(f"Error al guardar mapeo de pedido: {e}", str(self.file_path))

    def _find_record(self, external_order_id: str) -> Optional[dict]:
        if not external_order_id:
            raise MappingValidationError("Se requiere external_order_id")

        external_order_id = str(external_order_id)
        for record in self._read_records():
            if record.get('externalOrderId') == external_order_id:
                return record
        return None

    def get(self, external_order_id: str) -> Optional[str]:
        """ID interno del pedido o None"""
        record = self._find_record(external_order_id)
        return record.get('internalOrderId') if record else None

    def exists(self, external_order_id: str) -> bool:
        return self.get(external_order_id) is not None

    def is_shipped(self, external_order_id: str) -> bool:
        """Indica si el envío del pedido ya se creó en inventario"""
        record = self._find_record(external_order_id)
        return bool(record and record.get('shippedAt'))

    def mark_shipped(self, external_order_id: str) -> bool:
        """
        Marca el pedido como enviado (shippedAt) para no repetir el envío
        tras un reinicio.

        Returns:
            False si el pedido no tiene mapeo

        Raises:
            LockTimeoutError: Si no se obtuvo el lock (no se escribió nada)
        """
        if not external_order_id:
            raise MappingValidationError("Se requiere external_order_id")

        external_order_id = str(external_order_id)
        now = datetime.now(timezone.utc).isoformat()

        try:
            with self._lock():
                records = self._read_records()
                record = next(
                    (r for r in records if r.get('externalOrderId') == external_order_id), None
                )
                if record is None:
                    logger.warning(f"No se marcó el envío del pedido {external_order_id}: sin mapeo")
                    return False

                record['shippedAt'] = now
                record['updatedAt'] = now
                write_json_atomic(self.file_path, {'mappings': records})
        except LockTimeoutError:
            logger.error(f"No se marcó el envío del pedido {external_order_id}: lock ocupado")
            raise
        except OSError as e:
            logger.error(f"Error al marcar el envío del pedido {external_order_id}: {e}")
            raise MappingFileError(f"Error al guardar mapeo de pedido: {e}", str(self.file_path))

        logger.info(f"Envío registrado para el pedido {external_order_id}")
        return True

    def load_all(self) -> list[OrderMapping]:
        """Todos los mapeos válidos del archivo"""
        mappings = []
        for record in self._read_records():
            try:
                mappings.append(OrderMapping(**record))
            except (TypeError, ValueError) as e:
                logger.warning(f"Registro de pedido inválido omitido: {record} ({e})")
        return mappings

    def delete(self, external_order_id: str) -> bool:
        """
        Elimina el mapeo de un pedido (acción administrativa).

        Returns:
            True si existía y se eliminó
        """
        if not external_order_id:
            raise MappingValidationError("Se requiere external_order_id")

        external_order_id = str(external_order_id)
        with self._lock():
            records = self._read_records()
            remaining = [r for r in records if r.get('externalOrderId') != external_order_id]
            if len(remaining) == len(records):
                return False
            write_json_atomic(self.file_path, {'mappings': remaining})

        logger.info(f"Mapeo de pedido eliminado: {external_order_id}")
        return True
