"""
Métricas de las operaciones de mapeo.

Contadores en memoria de lookups (encontrados / no encontrados) y de ítems
omitidos por falta de mapeo. No afectan el flujo de control.
"""
import logging
import threading
from collections import deque
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)

INTERNAL_TO_EXTERNAL = "internal_to_external"
EXTERNAL_TO_INTERNAL = "external_to_internal"

SKIP_CONTEXTS = ("stock", "webhook", "order")


class MappingMetrics:
    """Contadores de lookups y de ítems omitidos"""

    MAX_RECENT_ERRORS = 100

    def __init__(self):
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        """Reinicia todos los contadores"""
        with self._lock:
            self.total_mappings = 0
            self.last_loaded: Optional[datetime] = None
            self.lookup_stats = {
                INTERNAL_TO_EXTERNAL: {"success": 0, "not_found": 0},
                EXTERNAL_TO_INTERNAL: {"success": 0, "not_found": 0},
            }
            self.skipped_items = {context: 0 for context in SKIP_CONTEXTS}
            self.recent_errors: deque = deque(maxlen=self.MAX_RECENT_ERRORS)
            self.start_time = datetime.now()

    def update_mapping_count(self, count: int) -> None:
        with self._lock:
            self.total_mappings = count
            self.last_loaded = datetime.now()
        logger.info(f"Métricas de mapeo actualizadas: {count} mapeos")

    def record_lookup(self, direction: str, identifier: str, found: bool, context: str = "unknown") -> None:
        """
        Registra el resultado de un lookup.

        Args:
            direction: INTERNAL_TO_EXTERNAL o EXTERNAL_TO_INTERNAL
            identifier: ID consultado
            found: Si el mapeo existía
            context: Origen de la consulta (stock, webhook, order...)
        """
        with self._lock:
            counters = self.lookup_stats[direction]
            if found:
                counters["success"] += 1
                return
            counters["not_found"] += 1
            self.recent_errors.append({
                "type": "NOT_FOUND",
                "direction": direction,
                "identifier": identifier,
                "context": context,
                "timestamp": datetime.now().isoformat(),
            })

    def record_skipped_item(self, context: str, identifier: str) -> None:
        with self._lock:
            self.skipped_items[context] = self.skipped_items.get(context, 0) + 1
        logger.debug(f"Ítem omitido por falta de mapeo ({context}): {identifier}")

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "total_mappings": self.total_mappings,
                "last_loaded": self.last_loaded.isoformat() if self.last_loaded else None,
                "lookups": {k: dict(v) for k, v in self.lookup_stats.items()},
                "skipped_items": dict(self.skipped_items),
                "recent_errors": list(self.recent_errors),
                "uptime_seconds": round((datetime.now() - self.start_time).total_seconds(), 1),
            }

    def get_summary(self) -> dict:
        """Resumen con tasas de éxito por dirección"""
        with self._lock:
            summary = {
                "total_mappings": self.total_mappings,
                "total_skipped": sum(self.skipped_items.values()),
            }
            for direction, counters in self.lookup_stats.items():
                total = counters["success"] + counters["not_found"]
                rate = (counters["success"] / total * 100) if total > 0 else 100.0
                summary[f"{direction}_success_rate"] = round(rate, 2)
            return summary


# Instancia compartida por el proceso
mapping_metrics = MappingMetrics()
