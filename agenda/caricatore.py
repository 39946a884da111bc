"""
Caricamento della settimana visualizzata.

Flusso:
- le tre letture (orario, eccezioni, appuntamenti) partono insieme e si aspettano tutte:
  se anche una sola fallisce -> CaricamentoParziale, la matrice non si costruisce
- CaricamentoParziale viene ritentato con backoff esponenziale (tenacity)
- ogni risultato porta la settimana per cui è stato chiesto: se nel frattempo l'utente ha cambiato
  settimana, il risultato arrivato in ritardo viene scartato
- le modifiche alle eccezioni si applicano subito in locale, poi una ricarica in background
  riallinea lo stato: in caso di differenze vince sempre il server
"""
from __future__ import annotations

import json
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Callable

from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .appuntamenti import RegistroAppuntamenti
from .config import Settings, load_settings
from .dominio import Appuntamento, Cella, Eccezione
from .eccezioni import RegistroEccezioni
from .errori import CaricamentoParziale, ErroreAgenda
from .kv import Archivio, ArchivioMemoria
from .matrice import costruisci_matrice
from .orari import DataLike, a_data, etichette_orarie, formatta_data_locale, lunedi_della_settimana
from .settimanale import OrarioSettimanale
from .sorgenti import Sorgente

logger = logging.getLogger(__name__)

PREFISSO_CELLE = "celle:"


@dataclass(frozen=True)
class DatiSettimana:
    inizio: date
    fine: date
    orario: OrarioSettimanale = field(compare=False)
    eccezioni: list[Eccezione] = field(compare=False)
    appuntamenti: list[Appuntamento] = field(compare=False)

    @property
    def etichetta(self) -> tuple[date, date]:
        return (self.inizio, self.fine)


def scarica_settimana(sorgente: Sorgente, inizio: DataLike, fine: DataLike) -> DatiSettimana:
    """Le tre letture in parallelo, con join: o arrivano tutte o nessuna."""
    d0, d1 = a_data(inizio), a_data(fine)

    with ThreadPoolExecutor(max_workers=3, thread_name_prefix="scarica") as ex:
        futures = {
            "orario": ex.submit(sorgente.scarica_orario),
            "eccezioni": ex.submit(sorgente.scarica_eccezioni, d0, d1),
            "appuntamenti": ex.submit(sorgente.scarica_appuntamenti, d0, d1),
        }

    risultati: dict[str, Any] = {}
    fallite: dict[str, BaseException] = {}
    for nome, fut in futures.items():
        errore = fut.exception()
        if errore is not None:
            fallite[nome] = errore
        else:
            risultati[nome] = fut.result()

    if fallite:
        raise CaricamentoParziale(fallite)

    return DatiSettimana(d0, d1, risultati["orario"], list(risultati["eccezioni"]), list(risultati["appuntamenti"]))


def _log_tentativo_fallito(retry_state: RetryCallState) -> None:
    if retry_state.outcome is not None and retry_state.outcome.failed:
        logger.warning("Tentativo %s di caricamento fallito: %s", retry_state.attempt_number, retry_state.outcome.exception())


class CaricatoreSettimana:
    def __init__(
        self,
        sorgente: Sorgente,
        archivio: Archivio | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.sorgente = sorgente
        self.archivio = archivio if archivio is not None else ArchivioMemoria()
        self.settings = settings or load_settings()
        self.etichette = etichette_orarie(
            self.settings.ora_apertura, self.settings.ora_chiusura, self.settings.slot_minuti
        )

        self.orario = OrarioSettimanale()
        self.eccezioni = RegistroEccezioni()
        self.appuntamenti = RegistroAppuntamenti()
        self.matrice: dict[str, Cella] = {}
        self.scartati: list[Any] = []

        self.richiesta: tuple[date, date] | None = None
        self.caricata: tuple[date, date] | None = None

        self._lock = threading.RLock()
        self._sfondo = ThreadPoolExecutor(max_workers=2, thread_name_prefix="agenda")
        self._generazione = 0  # incrementata a ogni invalidazione della cache
        self.ultima_riconciliazione: Future | None = None

    def __enter__(self) -> "CaricatoreSettimana":
        return self

    def __exit__(self, *exc: object) -> None:
        self.chiudi()

    def chiudi(self) -> None:
        self._sfondo.shutdown(wait=True)

    # ---- navigazione ----
    def imposta_settimana(self, giorno: DataLike) -> tuple[date, date]:
        lunedi = lunedi_della_settimana(giorno)
        with self._lock:
            self.richiesta = (lunedi, lunedi + timedelta(days=6))
            return self.richiesta

    def vai_a_settimana(self, delta: int) -> tuple[date, date]:
        """Sposta la settimana richiesta di `delta` settimane (negativo = indietro)."""
        if self.richiesta is None:
            raise RuntimeError("Nessuna settimana impostata")
        return self.imposta_settimana(self.richiesta[0] + timedelta(weeks=delta))

    def puo_tornare_indietro(self, oggi: DataLike | None = None) -> bool:
        """Le settimane già passate non si prenotano: si torna indietro solo fino alla settimana corrente."""
        if self.richiesta is None:
            return False
        precedente = self.richiesta[0] - timedelta(weeks=1)
        return precedente >= lunedi_della_settimana(oggi or date.today())

    # ---- caricamento ----
    def scarica(self, inizio: DataLike, fine: DataLike) -> DatiSettimana:
        """scarica_settimana con retry su CaricamentoParziale; dopo l'ultimo tentativo l'errore risale."""
        con_retry = retry(
            retry=retry_if_exception_type(CaricamentoParziale),
            stop=stop_after_attempt(self.settings.tentativi_caricamento),
            wait=wait_exponential(multiplier=self.settings.backoff_secondi, max=30),
            after=_log_tentativo_fallito,
            reraise=True,
        )(scarica_settimana)
        return con_retry(self.sorgente, inizio, fine)

    def carica(self, giorno: DataLike | None = None) -> dict[str, Cella]:
        if giorno is not None:
            self.imposta_settimana(giorno)
        if self.richiesta is None:
            self.imposta_settimana(date.today())
        inizio, fine = self.richiesta
        self.applica(self.scarica(inizio, fine))
        return self.matrice

    def carica_in_sfondo(self, giorno: DataLike | None = None) -> Future:
        """Come carica(), ma senza bloccare: il Future risolve a True se il risultato è stato applicato."""
        if giorno is not None:
            self.imposta_settimana(giorno)
        if self.richiesta is None:
            self.imposta_settimana(date.today())
        inizio, fine = self.richiesta
        return self._sfondo.submit(lambda: self.applica(self.scarica(inizio, fine)))

    def applica(self, dati: DatiSettimana) -> bool:
        """
        Sostituisce lo stato locale con quello del server e ricostruisce la matrice.
        Ritorna False (senza toccare nulla) se i dati sono di una settimana non più richiesta.
        """
        with self._lock:
            if dati.etichetta != self.richiesta:
                logger.info(
                    "Risposta per %s..%s scartata: settimana richiesta %s",
                    dati.inizio,
                    dati.fine,
                    "nessuna" if self.richiesta is None else f"{self.richiesta[0]}..{self.richiesta[1]}",
                )
                return False

            prima = _firme_per_data(self.eccezioni, self.appuntamenti)
            orario_prima = self.orario.righe()

            self.orario = dati.orario
            self.eccezioni.sostituisci(dati.eccezioni)
            self.appuntamenti.sostituisci(dati.appuntamenti)

            if self.orario.righe() != orario_prima:
                self.invalida_tutto()
            else:
                dopo = _firme_per_data(self.eccezioni, self.appuntamenti)
                cambiate = sorted(d for d in prima.keys() | dopo.keys() if prima.get(d) != dopo.get(d))
                if cambiate and self.caricata == dati.etichetta:
                    logger.info("Riallineamento dal server: date cambiate %s", ", ".join(map(str, cambiate)))
                for d in cambiate:
                    self.invalida(d)

            self.caricata = dati.etichetta
            self._ricostruisci()
            return True

    def _ricostruisci(self) -> None:
        if self.caricata is None:
            return
        self.scartati = []
        inizio, fine = self.caricata
        self.matrice = costruisci_matrice(
            inizio,
            fine,
            self.etichette,
            self.orario,
            self.eccezioni.per_intervallo(inizio, fine),
            self.appuntamenti.per_intervallo(inizio, fine),
            slot_minuti=self.settings.slot_minuti,
            scartati=self.scartati,
        )
        if self.scartati:
            logger.warning("%d record scartati nella costruzione della matrice", len(self.scartati))

    # ---- cache per giorno ----
    def celle_del_giorno(self, giorno: DataLike) -> list[dict[str, Any]]:
        g = a_data(giorno)
        chiave = PREFISSO_CELLE + formatta_data_locale(g)
        in_cache = self.archivio.leggi(chiave)
        if in_cache is not None:
            return in_cache

        while True:
            with self._lock:
                generazione = self._generazione
                celle = costruisci_matrice(
                    g,
                    g,
                    self.etichette,
                    self.orario,
                    self.eccezioni.per_data(g),
                    self.appuntamenti.per_data(g),
                    slot_minuti=self.settings.slot_minuti,
                )
            righe = [c.to_json() for c in celle.values()]
            self.archivio.scrivi(chiave, righe)

            with self._lock:
                if self._generazione == generazione:
                    return righe
                # invalidata mentre si scriveva: le righe salvate sono vecchie
                logger.debug("Celle del %s invalidate durante il salvataggio, ricalcolo", g)
                self.archivio.elimina(chiave)

    def invalida(self, giorno: DataLike) -> None:
        with self._lock:
            self._generazione += 1
        self.archivio.elimina(PREFISSO_CELLE + formatta_data_locale(a_data(giorno)))

    def invalida_tutto(self) -> None:
        with self._lock:
            self._generazione += 1
        for chiave in self.archivio.chiavi(PREFISSO_CELLE):
            self.archivio.elimina(chiave)

    # ---- modifiche ottimistiche ----
    def crea_eccezione(self, eccezione: Eccezione) -> Eccezione:
        self.eccezioni.verifica(eccezione)
        creata = self._al_server(self.sorgente.crea_eccezione, eccezione)
        with self._lock:
            self.eccezioni.inserisci(creata)
            self.invalida(creata.data)
            self._ricostruisci()
        self.ultima_riconciliazione = self.riconcilia()
        return creata

    def aggiorna_eccezione(self, id_eccezione: int | str, eccezione: Eccezione) -> Eccezione:
        vecchia = self.eccezioni.get(id_eccezione)
        self.eccezioni.verifica(eccezione, escludi=id_eccezione)
        aggiornata = self._al_server(self.sorgente.aggiorna_eccezione, id_eccezione, eccezione)
        with self._lock:
            self.eccezioni.rimuovi(id_eccezione)
            self.eccezioni.inserisci(aggiornata)
            self.invalida(vecchia.data)
            self.invalida(aggiornata.data)
            self._ricostruisci()
        self.ultima_riconciliazione = self.riconcilia()
        return aggiornata

    def elimina_eccezione(self, id_eccezione: int | str) -> None:
        vecchia = self.eccezioni.get(id_eccezione)
        self._al_server(self.sorgente.elimina_eccezione, id_eccezione)
        with self._lock:
            self.eccezioni.rimuovi(id_eccezione)
            self.invalida(vecchia.data)
            self._ricostruisci()
        self.ultima_riconciliazione = self.riconcilia()

    def _al_server(self, operazione: Callable[..., Any], *args: Any) -> Any:
        try:
            return operazione(*args)
        except ErroreAgenda:
            # lo stato locale era vecchio: ricarica per riallinearlo
            self.ultima_riconciliazione = self.riconcilia()
            raise

    def riconcilia(self) -> Future:
        """Ricarica la settimana corrente in background; il Future risolve a True se applicata."""
        if self.caricata is None:
            fatto: Future = Future()
            fatto.set_result(False)
            return fatto
        inizio, fine = self.caricata

        def _esegui() -> bool:
            try:
                return self.applica(self.scarica(inizio, fine))
            except CaricamentoParziale as e:
                logger.warning("Riconciliazione non riuscita, resta lo stato locale: %s", e)
                return False

        return self._sfondo.submit(_esegui)


def _firme_per_data(eccezioni: RegistroEccezioni, appuntamenti: RegistroAppuntamenti) -> dict[date, list[str]]:
    firme: dict[date, list[str]] = {}
    for record in [*eccezioni, *appuntamenti]:
        firme.setdefault(record.data, []).append(json.dumps(record.to_json(), sort_keys=True, default=str))
    return {d: sorted(v) for d, v in firme.items()}
