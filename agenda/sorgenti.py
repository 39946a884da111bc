"""
Sorgenti dati dell'agenda (lette dal caricatore settimanale).

- SorgenteRest    : backend prenotazioni via HTTP (requests)
- SorgenteMemoria : stessi metodi sopra i registri in memoria (demo, test)

Le mutazioni ritornano il record completo così il caricatore può riconciliare senza ricaricare tutto.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Iterable, Protocol

import requests

from .appuntamenti import RegistroAppuntamenti
from .config import Settings
from .dominio import Appuntamento, Eccezione
from .eccezioni import RegistroEccezioni
from .errori import ConflittoSovrapposizione, EccezioneDuplicata, NonTrovato, OrarioNonValido
from .orari import DataLike, a_data, formatta_data_locale
from .settimanale import OrarioSettimanale

logger = logging.getLogger(__name__)


class Sorgente(Protocol):
    def scarica_orario(self) -> OrarioSettimanale: ...

    def scarica_eccezioni(self, inizio: DataLike, fine: DataLike) -> list[Eccezione]: ...

    def scarica_appuntamenti(self, inizio: DataLike, fine: DataLike) -> list[Appuntamento]: ...

    def crea_eccezione(self, eccezione: Eccezione) -> Eccezione: ...

    def aggiorna_eccezione(self, id_eccezione: int | str, eccezione: Eccezione) -> Eccezione: ...

    def elimina_eccezione(self, id_eccezione: int | str) -> None: ...

    def salva_orario(self, orario: OrarioSettimanale) -> OrarioSettimanale: ...


def leggi_eccezioni(righe: Iterable[dict[str, Any]] | None) -> list[Eccezione]:
    eccezioni: list[Eccezione] = []
    for r in righe or []:
        try:
            eccezioni.append(Eccezione.da_json(r))
        except (OrarioNonValido, KeyError, ValueError, TypeError) as e:
            logger.warning("Eccezione ignorata (record non valido): %s (%r)", e, r)
    return eccezioni


def leggi_appuntamenti(righe: Iterable[dict[str, Any]] | None) -> list[Appuntamento]:
    # L'orario resta grezzo: lo valida la matrice, che scarta e segnala i record rotti.
    appuntamenti: list[Appuntamento] = []
    for r in righe or []:
        try:
            appuntamenti.append(Appuntamento.da_json(r))
        except (KeyError, ValueError, TypeError) as e:
            logger.warning("Appuntamento ignorato (record non valido): %s (%r)", e, r)
    return appuntamenti


# =========================
# REST
# =========================
class SorgenteRest:
    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 10,
        sessione: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.http = sessione or requests.Session()

    @classmethod
    def da_settings(cls, settings: Settings) -> "SorgenteRest":
        return cls(settings.api_base, token=settings.api_token, timeout=settings.http_timeout)

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        # "t" evita risposte servite da cache intermedie
        params = {**(params or {}), "t": str(int(time.time() * 1000))}
        r = self.http.get(f"{self.base_url}{path}", headers=self._headers(), params=params, timeout=self.timeout)
        return self._risposta(r)

    def _invia(self, metodo: str, path: str, payload: Any = None) -> Any:
        r = self.http.request(metodo, f"{self.base_url}{path}", headers=self._headers(), json=payload, timeout=self.timeout)
        return self._risposta(r)

    @staticmethod
    def _risposta(r: requests.Response) -> Any:
        if r.status_code == 401:
            raise PermissionError("401 Unauthorized (token non valido/scaduto).")
        if r.status_code == 404:
            raise NonTrovato(f"Risorsa non trovata: {r.url}")
        if r.status_code == 409:
            try:
                corpo = r.json()
            except ValueError:
                corpo = {}
            if not isinstance(corpo, dict):
                corpo = {}
            messaggio = corpo.get("error") or corpo.get("message") or "Conflitto con un blocco esistente"
            if corpo.get("code") == "DUPLICADO":
                raise EccezioneDuplicata(messaggio, esistente=corpo.get("existente"))
            raise ConflittoSovrapposizione(messaggio, esistente=corpo.get("existente"))

        r.raise_for_status()
        if not r.content:
            return None
        return r.json()

    # ---- letture ----
    def scarica_orario(self) -> OrarioSettimanale:
        return OrarioSettimanale.da_json(self._get("/api/admin/horarios"))

    def scarica_eccezioni(self, inizio: DataLike, fine: DataLike) -> list[Eccezione]:
        return leggi_eccezioni(self._get("/api/bloques-manuales", _intervallo(inizio, fine)))

    def scarica_appuntamenti(self, inizio: DataLike, fine: DataLike) -> list[Appuntamento]:
        return leggi_appuntamenti(self._get("/api/citas", _intervallo(inizio, fine)))

    # ---- mutazioni ----
    def crea_eccezione(self, eccezione: Eccezione) -> Eccezione:
        corpo = eccezione.to_json()
        corpo.pop("id", None)
        return Eccezione.da_json(self._invia("POST", "/api/bloques-manuales", corpo))

    def aggiorna_eccezione(self, id_eccezione: int | str, eccezione: Eccezione) -> Eccezione:
        corpo = eccezione.to_json()
        corpo.pop("id", None)
        return Eccezione.da_json(self._invia("PUT", f"/api/bloques-manuales/{id_eccezione}", corpo))

    def elimina_eccezione(self, id_eccezione: int | str) -> None:
        self._invia("DELETE", f"/api/bloques-manuales/{id_eccezione}")

    def salva_orario(self, orario: OrarioSettimanale) -> OrarioSettimanale:
        risposta = self._invia("POST", "/api/admin/horarios", {"horarios": orario.righe()})
        # Alcune versioni del backend rispondono solo {"ok": true}: in quel caso vale quanto inviato.
        if isinstance(risposta, list) or (isinstance(risposta, dict) and "horarioSemanal" in risposta):
            return OrarioSettimanale.da_json(risposta)
        return orario


def _intervallo(inizio: DataLike, fine: DataLike) -> dict[str, str]:
    return {"fecha_inicio": formatta_data_locale(a_data(inizio)), "fecha_fin": formatta_data_locale(a_data(fine))}


# =========================
# Memoria
# =========================
class SorgenteMemoria:
    def __init__(
        self,
        orario: OrarioSettimanale | None = None,
        eccezioni: RegistroEccezioni | None = None,
        appuntamenti: RegistroAppuntamenti | None = None,
    ) -> None:
        self.orario = orario if orario is not None else OrarioSettimanale()
        self.eccezioni = eccezioni if eccezioni is not None else RegistroEccezioni()
        self.appuntamenti = appuntamenti if appuntamenti is not None else RegistroAppuntamenti()

    def scarica_orario(self) -> OrarioSettimanale:
        # copia: chi legge non deve poter modificare lo stato della sorgente
        return OrarioSettimanale(list(self.orario))

    def scarica_eccezioni(self, inizio: DataLike, fine: DataLike) -> list[Eccezione]:
        return self.eccezioni.per_intervallo(inizio, fine)

    def scarica_appuntamenti(self, inizio: DataLike, fine: DataLike) -> list[Appuntamento]:
        return self.appuntamenti.per_intervallo(inizio, fine)

    def crea_eccezione(self, eccezione: Eccezione) -> Eccezione:
        return self.eccezioni.get(self.eccezioni.aggiungi(eccezione))

    def aggiorna_eccezione(self, id_eccezione: int | str, eccezione: Eccezione) -> Eccezione:
        return self.eccezioni.aggiorna(id_eccezione, eccezione)

    def elimina_eccezione(self, id_eccezione: int | str) -> None:
        self.eccezioni.rimuovi(id_eccezione)

    def salva_orario(self, orario: OrarioSettimanale) -> OrarioSettimanale:
        self.orario = OrarioSettimanale(list(orario))
        return self.scarica_orario()
