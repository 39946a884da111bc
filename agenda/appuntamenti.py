from __future__ import annotations

import logging
from itertools import combinations
from typing import Iterable, Iterator

from .dominio import Appuntamento
from .errori import OrarioNonValido
from .orari import DataLike, a_data, sovrapposte

logger = logging.getLogger(__name__)


class RegistroAppuntamenti:
    """
    Appuntamenti prenotati, in sola lettura: li possiede il sistema prenotazioni.
    Qui servono solo a marcare le celle occupate.
    """

    def __init__(self, appuntamenti: Iterable[Appuntamento] = ()) -> None:
        self._elenco: list[Appuntamento] = list(appuntamenti)

    def __iter__(self) -> Iterator[Appuntamento]:
        return iter(list(self._elenco))

    def __len__(self) -> int:
        return len(self._elenco)

    def sostituisci(self, appuntamenti: Iterable[Appuntamento]) -> None:
        self._elenco = list(appuntamenti)

    def aggiungi(self, appuntamento: Appuntamento) -> None:
        self._elenco.append(appuntamento)

    def per_data(self, giorno: DataLike) -> list[Appuntamento]:
        g = a_data(giorno)
        return [a for a in self._elenco if a.data == g]

    def per_intervallo(self, inizio: DataLike, fine: DataLike) -> list[Appuntamento]:
        d0, d1 = a_data(inizio), a_data(fine)
        return [a for a in self._elenco if d0 <= a.data <= d1]

    def sovrapposizioni(self) -> list[tuple[Appuntamento, Appuntamento]]:
        """
        Coppie di appuntamenti dello stesso giorno con intervalli [inizio, inizio+durata) sovrapposti.
        L'invariante è garantita a monte: qui la si controlla solo in lettura.
        """
        validi: list[tuple[Appuntamento, tuple[int, int]]] = []
        for a in self._elenco:
            try:
                validi.append((a, a.intervallo()))
            except OrarioNonValido as e:
                logger.warning("Appuntamento %s ignorato nel controllo sovrapposizioni: %s", a.id, e)

        conflitti: list[tuple[Appuntamento, Appuntamento]] = []
        for (a, (ia, fa)), (b, (ib, fb)) in combinations(validi, 2):
            if a.data == b.data and sovrapposte(ia, fa, ib, fb):
                conflitti.append((a, b))

        if conflitti:
            logger.warning("Rilevate %d coppie di appuntamenti sovrapposti", len(conflitti))
        return conflitti
