from __future__ import annotations

import itertools
import logging
from dataclasses import replace
from datetime import date
from typing import Iterable, Iterator

from .dominio import Eccezione
from .errori import ConflittoSovrapposizione, EccezioneDuplicata, NonTrovato
from .orari import DataLike, a_data

logger = logging.getLogger(__name__)


class RegistroEccezioni:
    """
    Eccezioni (blocchi manuali / aperture) indicizzate per id, in ordine di inserimento.

    In scrittura:
    - niente duplicati (data, inizio, fine, tipo)
    - niente sovrapposizioni nello stesso giorno, di qualunque tipo
    `sostituisci()` invece accetta lo stato del server così com'è.
    """

    def __init__(self, eccezioni: Iterable[Eccezione] = ()) -> None:
        self._per_id: dict[int | str, Eccezione] = {}
        self._contatore = itertools.count(1)
        self.sostituisci(eccezioni)

    def __iter__(self) -> Iterator[Eccezione]:
        return iter(list(self._per_id.values()))

    def __len__(self) -> int:
        return len(self._per_id)

    def __contains__(self, id_eccezione: object) -> bool:
        return id_eccezione in self._per_id

    def get(self, id_eccezione: int | str) -> Eccezione:
        try:
            return self._per_id[id_eccezione]
        except KeyError:
            raise NonTrovato(f"Eccezione {id_eccezione} non trovata") from None

    # ---- scrittura ----
    def verifica(self, eccezione: Eccezione, escludi: int | str | None = None) -> None:
        """Solleva EccezioneDuplicata / ConflittoSovrapposizione senza modificare il registro."""
        stesso_giorno = [e for e in self.per_data(eccezione.data) if escludi is None or e.id != escludi]

        for esistente in stesso_giorno:
            if esistente.chiave == eccezione.chiave:
                raise EccezioneDuplicata(
                    f"Esiste già un'eccezione identica: {esistente}",
                    esistente=esistente,
                )

        for esistente in stesso_giorno:
            if esistente.fascia.si_sovrappone(eccezione.fascia):
                raise ConflittoSovrapposizione(
                    f"La fascia {eccezione.fascia} si sovrappone a {esistente}",
                    esistente=esistente,
                )

    def aggiungi(self, eccezione: Eccezione) -> int | str:
        self.verifica(eccezione)
        if eccezione.id is None or eccezione.id in self._per_id:
            eccezione = replace(eccezione, id=self._nuovo_id())
        self._per_id[eccezione.id] = eccezione
        return eccezione.id

    def aggiorna(self, id_eccezione: int | str, eccezione: Eccezione) -> Eccezione:
        self.get(id_eccezione)
        self.verifica(eccezione, escludi=id_eccezione)
        aggiornata = replace(eccezione, id=id_eccezione)
        self._per_id[id_eccezione] = aggiornata
        return aggiornata

    def rimuovi(self, id_eccezione: int | str) -> Eccezione:
        # Una doppia cancellazione è un errore: chi chiama la usa per accorgersi di stato vecchio.
        if id_eccezione not in self._per_id:
            raise NonTrovato(f"Eccezione {id_eccezione} non trovata (già eliminata?)")
        return self._per_id.pop(id_eccezione)

    def inserisci(self, eccezione: Eccezione) -> None:
        """Inserisce un record già accettato dal server (nessuna validazione)."""
        if eccezione.id is None:
            eccezione = replace(eccezione, id=self._nuovo_id())
        self._per_id[eccezione.id] = eccezione

    def sostituisci(self, eccezioni: Iterable[Eccezione]) -> None:
        """Lo stato del server vince sempre: rimpiazza tutto senza validare."""
        self._per_id = {}
        for e in eccezioni:
            self.inserisci(e)

    # ---- lettura ----
    def per_data(self, giorno: DataLike) -> list[Eccezione]:
        g = a_data(giorno)
        return [e for e in self._per_id.values() if e.data == g]

    def per_intervallo(self, inizio: DataLike, fine: DataLike) -> list[Eccezione]:
        """Estremi inclusi, ordine di inserimento."""
        d0, d1 = a_data(inizio), a_data(fine)
        return [e for e in self._per_id.values() if d0 <= e.data <= d1]

    def date(self) -> set[date]:
        return {e.data for e in self._per_id.values()}

    def _nuovo_id(self) -> int:
        nuovo = next(self._contatore)
        while nuovo in self._per_id:
            nuovo = next(self._contatore)
        return nuovo
