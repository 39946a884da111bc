"""
Archivio chiave/valore iniettabile.

Le cache (celle per giorno, bozze di selezione) passano da qui, così la logica di matrice e
selezione resta pura e l'archivio si può scambiare tra memoria e database.
I valori devono essere serializzabili in JSON: entrambe le implementazioni ne salvano una copia.
"""
from __future__ import annotations

import json
from typing import Any, Protocol

from sqlalchemy import Engine, delete, select

from .db import crea_sessionmaker, db_session, init_db
from .models import ValoreArchivio


class Archivio(Protocol):
    def leggi(self, chiave: str, default: Any = None) -> Any: ...

    def scrivi(self, chiave: str, valore: Any) -> None: ...

    def elimina(self, chiave: str) -> bool: ...

    def chiavi(self, prefisso: str = "") -> list[str]: ...


class ArchivioMemoria:
    def __init__(self) -> None:
        self._dati: dict[str, str] = {}

    def leggi(self, chiave: str, default: Any = None) -> Any:
        raw = self._dati.get(chiave)
        return default if raw is None else json.loads(raw)

    def scrivi(self, chiave: str, valore: Any) -> None:
        self._dati[chiave] = json.dumps(valore)

    def elimina(self, chiave: str) -> bool:
        return self._dati.pop(chiave, None) is not None

    def chiavi(self, prefisso: str = "") -> list[str]:
        return sorted(k for k in self._dati if k.startswith(prefisso))


class ArchivioSql:
    """Archivio persistente su SQLAlchemy (tabella `archivio_kv`)."""

    def __init__(self, engine: Engine) -> None:
        init_db(engine)
        self._sessioni = crea_sessionmaker(engine)

    def leggi(self, chiave: str, default: Any = None) -> Any:
        with db_session(self._sessioni) as s:
            riga = s.get(ValoreArchivio, chiave)
            if riga is None:
                return default
            return json.loads(riga.valore)

    def scrivi(self, chiave: str, valore: Any) -> None:
        testo = json.dumps(valore)
        with db_session(self._sessioni) as s:
            riga = s.get(ValoreArchivio, chiave)
            if riga is None:
                s.add(ValoreArchivio(chiave=chiave, valore=testo))
            else:
                riga.valore = testo

    def elimina(self, chiave: str) -> bool:
        with db_session(self._sessioni) as s:
            esito = s.execute(delete(ValoreArchivio).where(ValoreArchivio.chiave == chiave))
            return esito.rowcount > 0

    def chiavi(self, prefisso: str = "") -> list[str]:
        with db_session(self._sessioni) as s:
            q = select(ValoreArchivio.chiave).order_by(ValoreArchivio.chiave)
            if prefisso:
                q = q.where(ValoreArchivio.chiave.startswith(prefisso, autoescape=True))
            return list(s.scalars(q))
