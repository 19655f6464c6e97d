"""
Política de reintentos compartida para las llamadas al marketplace.

Hasta 3 reintentos (4 intentos en total) con backoff exponencial
base * 2^intento. Solo se reintentan 429 (respetando Retry-After), 5xx y
errores de red; el resto se propaga de inmediato. Al agotar los reintentos se
relanza el último error.
"""
import logging
import time
from functools import wraps
from typing import Callable, Optional

import requests
from tenacity import Retrying, retry_if_exception, stop_after_attempt

from .exceptions import TransientAPIError

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
)


def is_retryable_error(error: BaseException) -> bool:
    """Determina si un error es temporal y se puede reintentar"""
    if isinstance(error, TransientAPIError):
        return True
    if isinstance(error, TRANSPORT_ERRORS):
        return True
    return False


class RetryExecutor:
    """
    Ejecuta una función aplicando la política de reintentos.

    Args:
        base_delay: Backoff inicial en segundos (1s para stock, 2s para pedidos)
        max_retries: Reintentos después del primer intento
        sleep: Función de espera (inyectable en tests)
        name: Etiqueta para los logs
        max_retry_after: Tope en segundos para el Retry-After de un 429
    """

    MAX_RETRIES = 3
    MAX_RETRY_AFTER_SECONDS = 60.0

    def __init__(
        self,
        base_delay: float = 1.0,
        max_retries: int = MAX_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
        name: str = "marketplace",
        max_retry_after: float = MAX_RETRY_AFTER_SECONDS
    ):
        self.base_delay = base_delay
        self.max_retries = max_retries
        self.sleep = sleep
        self.name = name
        self.max_retry_after = max_retry_after
        self.total_retries = 0

    def compute_delay(self, attempt: int, error: Optional[BaseException] = None) -> float:
        """
        Espera antes del reintento número `attempt` (empezando en 0).

        Un 429 con Retry-After usa ese valor (limitado a max_retry_after) en
        lugar del backoff.
        """
        retry_after = getattr(error, 'retry_after', None)
        if retry_after is not None and getattr(error, 'status_code', None) == 429:
            delay = float(retry_after)
            if delay > self.max_retry_after:
                logger.warning(
                    f"[{self.name}] Retry-After de {delay:.0f}s limitado a {self.max_retry_after:.0f}s"
                )
                return self.max_retry_after
            return delay
        return self.base_delay * (2 ** attempt)

    def _wait(self, retry_state) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        return self.compute_delay(retry_state.attempt_number - 1, error)

    def _before_sleep(self, retry_state) -> None:
        self.total_retries += 1
        error = retry_state.outcome.exception()
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"[{self.name}] Error temporal ({error}). Reintento {retry_state.attempt_number}/"
            f"{self.max_retries} en {delay:.1f}s"
        )

    def call(self, func: Callable, *args, **kwargs):
        """Ejecuta func(*args, **kwargs) con reintentos"""
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self._wait,
            retry=retry_if_exception(is_retryable_error),
            before_sleep=self._before_sleep,
            sleep=self.sleep,
            reraise=True,
        )
        return retrying(func, *args, **kwargs)

    def wrap(self, func: Callable) -> Callable:
        """Decorador equivalente a call()"""
        @wraps(func)
        def wrapper(*args, **kwargs):
            return self.call(func, *args, **kwargs)
        return wrapper
