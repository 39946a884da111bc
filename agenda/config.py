from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .errori import OrarioNonValido
from .orari import in_minuti, normalizza_ora

# DB SQLite su file nella root del progetto
DB_PATH = Path(__file__).resolve().parents[1] / "agenda.sqlite"
FONTI = {"rest", "demo"}


@dataclass(frozen=True)
class Settings:
    fonte: str
    api_base: str
    api_token: str | None
    http_timeout: float
    database_url: str
    slot_minuti: int
    ora_apertura: str
    ora_chiusura: str
    tentativi_caricamento: int
    backoff_secondi: float
    log_level: str


def _intero(nome: str, default: int, minimo: int = 1) -> int:
    raw = os.getenv(nome, str(default)).strip()
    try:
        valore = int(raw)
    except ValueError:
        raise RuntimeError(f"{nome} deve essere un intero, trovato {raw!r}") from None
    if valore < minimo:
        raise RuntimeError(f"{nome} deve essere >= {minimo}, trovato {valore}")
    return valore


def _decimale(nome: str, default: float) -> float:
    raw = os.getenv(nome, str(default)).strip()
    try:
        valore = float(raw)
    except ValueError:
        raise RuntimeError(f"{nome} deve essere un numero, trovato {raw!r}") from None
    if valore < 0:
        raise RuntimeError(f"{nome} non può essere negativo")
    return valore


def _ora(nome: str, default: str) -> str:
    raw = os.getenv(nome, default)
    try:
        return normalizza_ora(raw)
    except OrarioNonValido:
        raise RuntimeError(f"{nome} non è un orario HH:MM valido: {raw!r}") from None


def load_settings() -> Settings:
    load_dotenv()

    apertura = _ora("AGENDA_ORA_APERTURA", "08:00")
    chiusura = _ora("AGENDA_ORA_CHIUSURA", "20:00")
    if in_minuti(apertura) >= in_minuti(chiusura):
        raise RuntimeError("AGENDA_ORA_APERTURA deve precedere AGENDA_ORA_CHIUSURA")

    fonte = os.getenv("AGENDA_FONTE", "rest").strip().lower()
    if fonte not in FONTI:
        raise RuntimeError(f"AGENDA_FONTE deve essere uno tra {sorted(FONTI)}, trovato {fonte!r}")

    return Settings(
        fonte=fonte,
        api_base=os.getenv("AGENDA_API_BASE", "http://127.0.0.1:3000").rstrip("/"),
        api_token=os.getenv("AGENDA_API_TOKEN") or None,
        http_timeout=_decimale("AGENDA_HTTP_TIMEOUT", 10),
        database_url=os.getenv("AGENDA_DATABASE_URL", f"sqlite:///{DB_PATH}"),
        slot_minuti=_intero("AGENDA_SLOT_MINUTI", 30),
        ora_apertura=apertura,
        ora_chiusura=chiusura,
        tentativi_caricamento=_intero("AGENDA_TENTATIVI_CARICAMENTO", 3),
        backoff_secondi=_decimale("AGENDA_BACKOFF_SECONDI", 1),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
