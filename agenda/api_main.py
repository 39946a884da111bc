from __future__ import annotations

import logging
from datetime import date
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .caricatore import CaricatoreSettimana
from .config import Settings, load_settings
from .dominio import Modalita, SessioneScelta
from .errori import (
    CaricamentoParziale,
    ConflittoSovrapposizione,
    EccezioneDuplicata,
    ErroreAgenda,
    NonTrovato,
    OrarioNonValido,
    SelezioneIncompleta,
    Sovrapposizione,
)
from .logs import configura_logging
from .matrice import costruisci_matrice, riepilogo_giorni
from .orari import Fascia, etichette_orarie, formatta_data_locale, lunedi_della_settimana
from .seed import sorgente_demo
from .sessioni import DatiPaziente, SelezioneSessioni, valida_selezione
from .sorgenti import Sorgente, SorgenteRest

logger = logging.getLogger(__name__)

app = FastAPI(title="Agenda Studio API", version="1.0.0")


# Startup

@app.on_event("startup")
def startup() -> None:
    configura_logging(verbose=True)


# Dipendenze

def get_settings() -> Settings:
    return load_settings()


def get_sorgente(settings: Settings = Depends(get_settings)) -> Sorgente:
    if settings.fonte == "demo":
        return sorgente_demo()
    return SorgenteRest.da_settings(settings)


# Errori di dominio -> HTTP

CODICI_HTTP: list[tuple[type[ErroreAgenda], int]] = [
    (EccezioneDuplicata, status.HTTP_409_CONFLICT),
    (ConflittoSovrapposizione, status.HTTP_409_CONFLICT),
    (Sovrapposizione, status.HTTP_409_CONFLICT),
    (NonTrovato, status.HTTP_404_NOT_FOUND),
    (OrarioNonValido, 422),
    (SelezioneIncompleta, 422),
    (CaricamentoParziale, status.HTTP_503_SERVICE_UNAVAILABLE),
]


@app.exception_handler(ErroreAgenda)
def gestisci_errore_agenda(request: Request, exc: ErroreAgenda) -> JSONResponse:
    codice = next((c for tipo, c in CODICI_HTTP if isinstance(exc, tipo)), status.HTTP_400_BAD_REQUEST)
    if codice >= 500:
        logger.error("%s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=codice, content={"detail": str(exc), "errore": type(exc).__name__})


# Schemi

class SessioneIn(BaseModel):
    numero: int = Field(..., ge=1)
    fecha: date
    horaInicio: str
    horaFin: str

    def a_dominio(self) -> SessioneScelta:
        return SessioneScelta(numero=self.numero, data=self.fecha, fascia=Fascia.crea(self.horaInicio, self.horaFin))


class ValidaIn(BaseModel):
    esistenti: list[SessioneIn] = Field(default_factory=list)
    candidata: SessioneIn


class PazienteIn(BaseModel):
    nombre: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    telefono: str = ""
    rut: str = ""
    notas: str = ""
    direccion: str = ""
    comuna: str = ""


class FinalizzaIn(BaseModel):
    paqueteId: int | str
    sesionesRequeridas: int = Field(..., ge=1)
    sesiones: list[SessioneIn]
    paciente: PazienteIn
    modalidad: str = Modalita.ENTRAMBE.value


# Endpoints

@app.get("/api/salute")
def salute() -> dict[str, Any]:
    return {"ok": True}


@app.get("/api/matrice")
def api_matrice(
    inizio: date = Query(...),
    fine: date = Query(...),
    etichette: list[str] | None = Query(None),
    settings: Settings = Depends(get_settings),
    sorgente: Sorgente = Depends(get_sorgente),
) -> dict[str, Any]:
    """Matrice {"YYYY-MM-DD_HH:MM": cella} per un intervallo arbitrario di date."""
    if fine < inizio:
        raise HTTPException(status_code=422, detail="fine deve essere >= inizio")

    griglia = etichette or etichette_orarie(settings.ora_apertura, settings.ora_chiusura, settings.slot_minuti)
    with CaricatoreSettimana(sorgente, settings=settings) as caricatore:
        dati = caricatore.scarica(inizio, fine)

    scartati: list[Any] = []
    matrice = costruisci_matrice(
        inizio, fine, griglia, dati.orario, dati.eccezioni, dati.appuntamenti,
        slot_minuti=settings.slot_minuti, scartati=scartati,
    )
    return {
        "celle": {k: c.to_json() for k, c in matrice.items()},
        "scartati": len(scartati),
    }


@app.get("/api/settimana")
def api_settimana(
    giorno: date | None = Query(None),
    settings: Settings = Depends(get_settings),
    sorgente: Sorgente = Depends(get_sorgente),
) -> dict[str, Any]:
    """Settimana (lunedì-domenica) che contiene `giorno`, con il riepilogo per giorno."""
    oggi = date.today()
    with CaricatoreSettimana(sorgente, settings=settings) as caricatore:
        matrice = caricatore.carica(giorno or oggi)
        inizio, fine = caricatore.richiesta
        puo_tornare = caricatore.puo_tornare_indietro(oggi)
        scartati = len(caricatore.scartati)

    return {
        "inizio": formatta_data_locale(inizio),
        "fine": formatta_data_locale(fine),
        "etichette": caricatore.etichette,
        "giorni": {formatta_data_locale(d): ok for d, ok in riepilogo_giorni(matrice).items()},
        "celle": {k: c.to_json() for k, c in matrice.items()},
        "puo_tornare_indietro": puo_tornare,
        "settimana_corrente": inizio == lunedi_della_settimana(oggi),
        "scartati": scartati,
    }


@app.post("/api/sessioni/valida")
def api_valida_sessione(payload: ValidaIn) -> dict[str, Any]:
    esito = valida_selezione([s.a_dominio() for s in payload.esistenti], payload.candidata.a_dominio())
    if "error" in esito:
        esito["messaggio"] = Sovrapposizione.MESSAGGIO_UTENTE
    return esito


@app.post("/api/sessioni/finalizza")
def api_finalizza_sessioni(payload: FinalizzaIn) -> dict[str, Any]:
    """Valida la scelta completa e restituisce la richiesta di prenotazione (ordinata per numero)."""
    selezione = SelezioneSessioni(payload.sesionesRequeridas)
    for s in payload.sesiones:
        scelta = s.a_dominio()
        try:
            selezione.assegna(scelta.numero, scelta.data, scelta.fascia)
        except ErroreAgenda:
            raise
        except ValueError as e:
            # numero di sessione fuori da 1..N
            raise HTTPException(status_code=422, detail=str(e))

    p = payload.paciente
    paziente = DatiPaziente(
        nome=p.nombre,
        email=p.email,
        telefono=p.telefono,
        rut=p.rut,
        note=p.notas,
        indirizzo=p.direccion,
        comune=p.comuna,
    )
    return selezione.richiesta_prenotazione(payload.paqueteId, paziente, Modalita.da_valore(payload.modalidad))
