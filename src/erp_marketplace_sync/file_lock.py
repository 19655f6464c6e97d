"""
Lock exclusivo a nivel de archivo para los archivos de mapeo.

El lock es un archivo `<ruta>.lock` creado en modo exclusivo. Si ya existe,
se reintenta cada `check_interval` segundos hasta `timeout`; al agotarse se
lanza LockTimeoutError y la operación protegida no se ejecuta.
"""
import json
import logging
import os
import tempfile
import time
from pathlib import Path

from .exceptions import LockTimeoutError

logger = logging.getLogger(__name__)


def write_json_atomic(path: Path, data) -> None:
    """
    Escribe JSON en un archivo temporal del mismo directorio y lo renombra.

    Un lector concurrente ve el archivo anterior o el nuevo, nunca uno a medias.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class FileLock:
    """Lock de archivo con espera acotada (busy-poll)"""

    DEFAULT_TIMEOUT = 5.0
    DEFAULT_CHECK_INTERVAL = 0.05

    def __init__(self, target_path, timeout: float = DEFAULT_TIMEOUT,
                 check_interval: float = DEFAULT_CHECK_INTERVAL):
        self.lock_path = Path(f"{target_path}.lock")
        self.timeout = timeout
        self.check_interval = check_interval
        self._held = False

    @property
    def is_held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        """
        Obtiene el lock o lanza LockTimeoutError.

        Raises:
            LockTimeoutError: Si el lock sigue ocupado al agotarse el timeout
            OSError: Para cualquier error de E/S distinto de "ya existe"
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        deadline = time.monotonic() + self.timeout

        while True:
            try:
                fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                if time.monotonic() >= deadline:
                    logger.error(f"Timeout esperando el lock {self.lock_path} ({self.timeout}s)")
                    raise LockTimeoutError(str(self.lock_path), self.timeout)
                time.sleep(self.check_interval)
                continue

            with os.fdopen(fd, 'w') as f:
                f.write(str(os.getpid()))
            self._held = True
            logger.debug(f"Lock obtenido: {self.lock_path}")
            return

    def release(self) -> None:
        """Libera el lock; no falla si el archivo ya no existe"""
        if not self._held:
            return
        try:
            self.lock_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"No se pudo liberar el lock {self.lock_path}: {e}")
        finally:
            self._held = False
        logger.debug(f"Lock liberado: {self.lock_path}")

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
