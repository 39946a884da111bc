from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Callable

import pytest

from agenda.config import Settings
from agenda.kv import ArchivioMemoria
from agenda.settimanale import OrarioSettimanale
from agenda.orari import Fascia

# 2025-01-06 è un lunedì
LUNEDI = date(2025, 1, 6)

_BASE = Settings(
    fonte="demo",
    api_base="http://agenda.test",
    api_token=None,
    http_timeout=1,
    database_url="sqlite://",
    slot_minuti=30,
    ora_apertura="08:00",
    ora_chiusura="20:00",
    tentativi_caricamento=3,
    backoff_secondi=0,
    log_level="DEBUG",
)


@pytest.fixture
def crea_settings() -> Callable[..., Settings]:
    # Settings completi senza passare dall'ambiente; backoff a zero per non dormire nei test.
    def _crea(**override) -> Settings:
        return replace(_BASE, **override)

    return _crea


@pytest.fixture
def settings(crea_settings) -> Settings:
    return crea_settings()


@pytest.fixture
def archivio() -> ArchivioMemoria:
    return ArchivioMemoria()


@pytest.fixture
def orario_lunedi() -> OrarioSettimanale:
    """Solo il lunedì, 09:00-17:00."""
    orario = OrarioSettimanale()
    orario.imposta_giorno(1, [Fascia.crea("09:00", "17:00")])
    return orario
