from __future__ import annotations

from typing import Any


class ErroreAgenda(Exception):
    """Base di tutti gli errori del dominio agenda."""


class OrarioNonValido(ErroreAgenda, ValueError):
    """Orario non interpretabile come "HH:MM[:SS]" oppure fascia con inizio >= fine."""


class EccezioneDuplicata(ErroreAgenda, ValueError):
    """Esiste già un'eccezione con stessa data, inizio, fine e tipo."""

    def __init__(self, messaggio: str, esistente: Any = None) -> None:
        super().__init__(messaggio)
        self.esistente = esistente


class ConflittoSovrapposizione(ErroreAgenda, ValueError):
    """La fascia si sovrappone a un'eccezione già registrata nello stesso giorno."""

    def __init__(self, messaggio: str, esistente: Any = None) -> None:
        super().__init__(messaggio)
        self.esistente = esistente


class Sovrapposizione(ErroreAgenda, ValueError):
    """
    Due sessioni dello stesso pacchetto si sovrappongono.
    Il messaggio è pensato per l'utente finale: nessun dettaglio interno.
    """

    MESSAGGIO_UTENTE = "Questo orario si sovrappone a un'altra sessione: scegli un orario diverso."

    def __init__(self, messaggio: str | None = None) -> None:
        super().__init__(messaggio or self.MESSAGGIO_UTENTE)


class SelezioneIncompleta(ErroreAgenda, ValueError):
    """Non sono state scelte tutte le sessioni richieste dal pacchetto."""


class NonTrovato(ErroreAgenda, LookupError):
    """Record inesistente (es. cancellazione di un blocco già rimosso)."""


class CaricamentoParziale(ErroreAgenda, RuntimeError):
    """
    Una delle tre sorgenti (orario, appuntamenti, eccezioni) non ha risposto.
    La matrice non va costruita su dati parziali.
    """

    def __init__(self, fallite: dict[str, BaseException]) -> None:
        self.fallite = dict(fallite)
        dettaglio = ", ".join(f"{nome} ({type(e).__name__}: {e})" for nome, e in self.fallite.items())
        super().__init__(f"Caricamento incompleto, sorgenti fallite: {dettaglio}")
