"""
Tareas periódicas del conector (barrido de stock y polling de pedidos).

Cada tarea es un asyncio.Task que se despierta cada N minutos y ejecuta el
trabajo (bloqueante) en un hilo. Si el ciclo anterior de la misma tarea
sigue en curso, el nuevo ciclo se omite.
"""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Planificador de tareas periódicas sobre el event loop de FastAPI"""

    def __init__(self):
        self._tasks: dict[str, asyncio.Task] = {}
        self._job_runs: set[asyncio.Task] = set()
        self._running: set[str] = set()
        self.jobs: dict[str, dict] = {}

    def schedule(self, name: str, interval_minutes: int, func: Callable[[], object]) -> None:
        """
        Programa func cada interval_minutes minutos.

        Debe llamarse con un event loop en ejecución (lifespan de FastAPI).

        Raises:
            ValueError: Si el intervalo es menor que 1 minuto o la tarea ya existe
        """
        if not interval_minutes or interval_minutes < 1:
            raise ValueError(f"El intervalo de '{name}' debe ser de al menos 1 minuto")
        if name in self._tasks:
            raise ValueError(f"La tarea '{name}' ya está programada")

        self.jobs[name] = {
            "interval_minutes": interval_minutes,
            "runs": 0,
            "skipped": 0,
            "last_run": None,
            "last_duration_seconds": None,
            "last_error": None,
        }
        self._tasks[name] = asyncio.create_task(
            self._run_periodically(name, interval_minutes * 60, func),
            name=f"scheduler-{name}"
        )
        logger.info(f"Tarea '{name}' programada cada {interval_minutes} minutos")

    def schedule_stock_sync(self, interval_minutes: int, sync_function: Callable[[], object]) -> None:
        self.schedule("stock_sync", interval_minutes, sync_function)

    def schedule_order_polling(self, interval_minutes: int, poll_function: Callable[[], object]) -> None:
        self.schedule("order_polling", interval_minutes, poll_function)

    async def _run_periodically(self, name: str, interval_seconds: float, func: Callable[[], object]) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            run = asyncio.create_task(self.run_job(name, func))
            self._job_runs.add(run)
            run.add_done_callback(self._job_runs.discard)

    async def run_job(self, name: str, func: Callable[[], object]) -> bool:
        """
        Ejecuta un ciclo de la tarea en un hilo.

        Los errores se registran y no detienen la tarea: el siguiente ciclo
        se ejecuta según lo programado.

        Returns:
            False si el ciclo se omitió porque el anterior seguía en curso
        """
        info = self.jobs.setdefault(name, {"runs": 0, "skipped": 0})

        if name in self._running:
            info["skipped"] = info.get("skipped", 0) + 1
            logger.warning(f"Tarea '{name}' todavía en ejecución. Ciclo omitido.")
            return False

        self._running.add(name)
        logger.info(f"Ejecutando tarea '{name}'")
        start_time = time.time()
        try:
            await asyncio.to_thread(func)
            info["last_error"] = None
        except Exception as e:
            logger.exception(f"Error en la tarea '{name}': {e}")
            info["last_error"] = str(e)
        finally:
            self._running.discard(name)
            duration = time.time() - start_time
            info["runs"] = info.get("runs", 0) + 1
            info["last_run"] = datetime.now(timezone.utc).isoformat()
            info["last_duration_seconds"] = round(duration, 2)
            logger.info(f"Tarea '{name}' terminada en {duration:.2f}s")
        return True

    def get_status(self) -> dict:
        return {
            name: {**info, "running": name in self._running, "scheduled": name in self._tasks}
            for name, info in self.jobs.items()
        }

    def stop_all(self) -> None:
        """Cancela las tareas periódicas; un ciclo ya en un hilo termina por su cuenta"""
        for name, task in self._tasks.items():
            task.cancel()
            logger.info(f"Tarea '{name}' detenida")
        self._tasks.clear()
