"""Esecuzione sequenziale di passi fallibili e barriera di inizializzazione."""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Iterable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Step:
    """Singolo passo di una procedura di bootstrap o emissione."""
    description: str
    action: Callable[[], None]


def run_steps(steps: Iterable[Step]) -> None:
    """
    Esegue i passi in ordine.

    Il primo errore interrompe la sequenza e viene propagato invariato;
    gli effetti dei passi già completati restano su disco.
    """
    for step in steps:
        logger.debug("→ %s", step.description)
        step.action()


class SingleFlight:
    """Esegue una funzione una sola volta anche con chiamanti concorrenti."""

    def __init__(self):
        self._lock = threading.Lock()
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    def run(self, func: Callable[[], None]) -> None:
        if self._done:
            return
        with self._lock:
            if self._done:
                return
            func()
            self._done = True
