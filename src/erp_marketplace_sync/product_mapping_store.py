"""
Almacén en archivo del mapeo de productos: ID interno <-> ID externo.

Formato del archivo:

    {
      "version": "1.0",
      "lastUpdated": "2026-01-01T00:00:00+00:00",
      "mappings": {"<internal_id>": "<external_id>", ...}
    }

Las escrituras se protegen con un FileLock; las lecturas no usan lock y
sustituyen de una vez el snapshot en memoria.
"""
import json
import logging
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

from .config import settings
from .exceptions import (
    LockTimeoutError,
    MappingFileError,
    MappingNotLoadedError,
    MappingStructureError,
    MappingValidationError,
)
from .file_lock import FileLock, write_json_atomic
from .metrics import EXTERNAL_TO_INTERNAL, INTERNAL_TO_EXTERNAL, MappingMetrics, mapping_metrics
from .models import MappingStoreStats

logger = logging.getLogger(__name__)


def _is_valid_id(value) -> bool:
    return isinstance(value, str) and value.strip() != ""


@dataclass(frozen=True)
class MappingSnapshot:
    """
    Vista inmutable de los mapeos cargados.

    Cada load() produce un snapshot nuevo con `version` incrementada.
    """
    version: int
    loaded_at: datetime
    forward: Mapping[str, str] = field(default_factory=dict)
    reverse: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def build(cls, version: int, pairs: Mapping[str, str]) -> "MappingSnapshot":
        forward = dict(pairs)
        reverse = {external_id: internal_id for internal_id, external_id in forward.items()}
        return cls(
            version=version,
            loaded_at=datetime.now(),
            forward=MappingProxyType(forward),
            reverse=MappingProxyType(reverse),
        )

    def __len__(self) -> int:
        return len(self.forward)

    def get_external_id(self, internal_id: str) -> Optional[str]:
        return self.forward.get(internal_id)

    def get_internal_id(self, external_id: str) -> Optional[str]:
        return self.reverse.get(external_id)

    def as_dict(self) -> dict[str, str]:
        return dict(self.forward)


class ProductMappingStore:
    """
    Almacén bidireccional de mapeos de productos.

    Mantiene en memoria los índices directo e inverso para lookups rápidos.
    """

    SCHEMA_VERSION = "1.0"
    MAX_BACKUPS = 3

    def __init__(
        self,
        file_path: Optional[str] = None,
        lock_timeout: Optional[float] = None,
        lock_check_interval: Optional[float] = None,
        metrics: Optional[MappingMetrics] = None
    ):
        self.file_path = Path(file_path or settings.PRODUCT_MAPPING_FILE).resolve()
        self.lock_timeout = lock_timeout if lock_timeout is not None else settings.LOCK_TIMEOUT_SECONDS
        self.lock_check_interval = (
            lock_check_interval if lock_check_interval is not None else settings.LOCK_CHECK_INTERVAL_SECONDS
        )
        self.metrics = metrics or mapping_metrics
        self._snapshot: Optional[MappingSnapshot] = None
        self._loads = 0

    def _lock(self) -> FileLock:
        return FileLock(self.file_path, timeout=self.lock_timeout, check_interval=self.lock_check_interval)

    @property
    def is_loaded(self) -> bool:
        return self._snapshot is not None

    @property
    def snapshot(self) -> MappingSnapshot:
        """Snapshot actual; falla si no se llamó a load()"""
        if self._snapshot is None:
            raise MappingNotLoadedError("Mapeos no cargados. Llame a load() antes de usarlos.")
        return self._snapshot

    # --- Carga ---

    def load(self) -> int:
        """
        Carga los mapeos del archivo a memoria.

        Si el archivo no existe se crea uno vacío. Los registros inválidos se
        omiten y se registran en el log sin abortar la carga.

        Returns:
            int: Número de mapeos cargados

        Raises:
            MappingFileError: JSON inválido o error de E/S
            MappingStructureError: Faltan las claves version/mappings
            LockTimeoutError: Al crear el archivo vacío con el lock ocupado
        """
        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.info(f"El archivo de mapeo no existe, se crea uno vacío: {self.file_path}")
            self._create_empty_file()
            self._install({})
            return 0
        except json.JSONDecodeError as e:
            logger.error(f"JSON inválido en el archivo de mapeo {self.file_path}: {e}")
            raise MappingFileError(f"JSON inválido en el archivo de mapeo: {e}", str(self.file_path))
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"No se pudo leer el archivo de mapeo {self.file_path}: {e}")
            raise MappingFileError(f"Error al leer el archivo de mapeo: {e}", str(self.file_path))

        raw_mappings = self._validate_structure(data)

        valid: dict[str, str] = {}
        seen_external: dict[str, str] = {}
        invalid = []

        for internal_id, external_id in raw_mappings.items():
            if not _is_valid_id(internal_id):
                invalid.append({"internal_id": internal_id, "reason": "ID interno inválido"})
                continue
            if not _is_valid_id(external_id):
                invalid.append({"internal_id": internal_id, "reason": "ID externo inválido"})
                continue
            if external_id in seen_external:
                invalid.append({
                    "internal_id": internal_id,
                    "reason": f"ID externo duplicado (ya asignado a {seen_external[external_id]})"
                })
                continue
            seen_external[external_id] = internal_id
            valid[internal_id] = external_id

        if invalid:
            logger.warning(f"Se omitieron {len(invalid)} mapeos inválidos: {invalid}")

        self._install(valid)
        logger.info(f"Mapeos cargados: {len(valid)} válidos, {len(invalid)} omitidos ({self.file_path})")
        return len(valid)

    def _validate_structure(self, data) -> dict:
        if not isinstance(data, dict):
            raise MappingStructureError("Estructura inválida: el archivo debe contener un objeto", str(self.file_path))
        if not data.get('version'):
            raise MappingStructureError("Estructura inválida: falta el campo version", str(self.file_path))
        mappings = data.get('mappings')
        if not isinstance(mappings, dict):
            raise MappingStructureError(
                "Estructura inválida: falta o es inválido el campo mappings", str(self.file_path)
            )
        return mappings

    def _install(self, pairs: Mapping[str, str]) -> None:
        self._loads += 1
        self._snapshot = MappingSnapshot.build(self._loads, pairs)
        self.metrics.update_mapping_count(len(self._snapshot))

    def _create_empty_file(self) -> None:
        with self._lock():
            # Otro proceso pudo crearlo mientras esperábamos el lock
            if self.file_path.exists():
                return
            write_json_atomic(self.file_path, self._document({}))
        logger.info(f"Archivo de mapeo vacío creado: {self.file_path}")

    def _document(self, mappings: Mapping[str, str]) -> dict:
        return {
            "version": self.SCHEMA_VERSION,
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
            "mappings": dict(mappings),
        }

    # --- Escritura ---

    def save(self, mappings: Mapping[str, str]) -> None:
        """
        Reemplaza el contenido del archivo con `mappings`.

        No modifica el snapshot en memoria; llame a load() para releerlo.

        Raises:
            MappingValidationError: Si algún par es inválido o rompe la biyección
            LockTimeoutError: Si no se obtuvo el lock (el archivo no se modificó)
            MappingFileError: Error de E/S al escribir
        """
        if not isinstance(mappings, Mapping):
            raise MappingValidationError("mappings debe ser un diccionario interno -> externo")

        seen_external = set()
        for internal_id, external_id in mappings.items():
            if not _is_valid_id(internal_id) or not _is_valid_id(external_id):
                raise MappingValidationError(f"Mapeo inválido: {internal_id!r} -> {external_id!r}")
            if external_id in seen_external:
                raise MappingValidationError(f"ID externo duplicado: {external_id}")
            seen_external.add(external_id)

        try:
            with self._lock():
                self.create_backup()
                write_json_atomic(self.file_path, self._document(mappings))
        except LockTimeoutError:
            logger.error(f"No se guardaron los mapeos: lock ocupado ({self.file_path})")
            raise
        except OSError as e:
            logger.error(f"Error al guardar mapeos en {self.file_path}: {e}")
            raise MappingFileError(f"Error al guardar mapeos: {e}", str(self.file_path))

        logger.info(f"Mapeos guardados: {len(mappings)} ({self.file_path})")

    def create_backup(self) -> bool:
        """Copia el archivo actual antes de reemplazarlo y rota las copias antiguas"""
        if not self.file_path.exists():
            return True

        try:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
            backup_path = self.file_path.with_name(f"{self.file_path.name}.backup.{timestamp}")
            shutil.copy2(self.file_path, backup_path)

            # Mantener solo los últimos MAX_BACKUPS
            backups = sorted(self.file_path.parent.glob(f"{self.file_path.name}.backup.*"))
            for old_backup in backups[:-self.MAX_BACKUPS]:
                old_backup.unlink()
                logger.debug(f"Backup antiguo eliminado: {old_backup}")

            logger.debug(f"Backup creado: {backup_path}")
            return True

        except OSError as e:
            logger.warning(f"Error al crear backup: {e}")
            return False

    # --- Lookups ---

    def get_external_id(self, internal_id: str) -> Optional[str]:
        """
        ID externo para un ID interno.

        Returns:
            str o None si no hay mapeo o la entrada es inválida

        Raises:
            MappingNotLoadedError: Si no se llamó a load()
        """
        if not _is_valid_id(internal_id):
            logger.warning(f"ID interno inválido en get_external_id: {internal_id!r}")
            return None

        external_id = self.snapshot.get_external_id(internal_id)
        if external_id is None:
            logger.debug(f"No existe mapeo para el ID interno {internal_id}")
        self.metrics.record_lookup(INTERNAL_TO_EXTERNAL, internal_id, external_id is not None, "store")
        return external_id

    def get_internal_id(self, external_id: str) -> Optional[str]:
        """ID interno para un ID externo (mapeo inverso)"""
        if not _is_valid_id(external_id):
            logger.warning(f"ID externo inválido en get_internal_id: {external_id!r}")
            return None

        internal_id = self.snapshot.get_internal_id(external_id)
        if internal_id is None:
            logger.debug(f"No existe mapeo inverso para el ID externo {external_id}")
        self.metrics.record_lookup(EXTERNAL_TO_INTERNAL, external_id, internal_id is not None, "store")
        return internal_id

    def list_internal_ids(self) -> list[str]:
        return list(self.snapshot.forward.keys())

    def list_external_ids(self) -> list[str]:
        return list(self.snapshot.reverse.keys())

    # --- Edición en memoria ---

    def add_mapping(self, internal_id: str, external_id: str) -> None:
        """Agrega un mapeo en memoria (no escribe el archivo)"""
        if not _is_valid_id(internal_id):
            raise MappingValidationError(f"ID interno inválido: {internal_id!r}")
        if not _is_valid_id(external_id):
            raise MappingValidationError(f"ID externo inválido: {external_id!r}")

        current = self.snapshot
        owner = current.get_internal_id(external_id)
        if owner is not None and owner != internal_id:
            raise MappingValidationError(f"El ID externo {external_id} ya está asignado a {owner}")

        pairs = current.as_dict()
        pairs[internal_id] = external_id
        self._install(pairs)
        logger.debug(f"Mapeo agregado en memoria: {internal_id} -> {external_id}")

    def remove_mapping(self, internal_id: str) -> bool:
        """Quita un mapeo de memoria (no escribe el archivo)"""
        pairs = self.snapshot.as_dict()
        if pairs.pop(internal_id, None) is None:
            return False
        self._install(pairs)
        logger.debug(f"Mapeo eliminado de memoria: {internal_id}")
        return True

    def get_stats(self) -> MappingStoreStats:
        return MappingStoreStats(
            total_mappings=len(self._snapshot) if self._snapshot else 0,
            last_loaded=self._snapshot.loaded_at if self._snapshot else None,
            is_loaded=self.is_loaded,
            version=self._snapshot.version if self._snapshot else 0,
            file_path=str(self.file_path),
        )
