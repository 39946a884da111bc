from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from .dominio import Modalita, SessioneScelta
from .errori import SelezioneIncompleta, Sovrapposizione
from .kv import Archivio
from .orari import DataLike, Fascia, a_data, formatta_data_locale

logger = logging.getLogger(__name__)

PREFISSO_BOZZA = "selezione:"


@dataclass(frozen=True)
class DatiPaziente:
    nome: str
    email: str
    telefono: str = ""
    rut: str = ""
    note: str = ""
    indirizzo: str = ""
    comune: str = ""

    def to_json(self) -> dict[str, str]:
        return {
            "rutPaciente": self.rut,
            "nombrePaciente": self.nome,
            "emailPaciente": self.email,
            "telefonoPaciente": self.telefono,
            "notas": self.note,
            "direccion": self.indirizzo,
            "comuna": self.comune,
        }


def _in_conflitto(esistenti: Iterable[SessioneScelta], candidata: SessioneScelta) -> SessioneScelta | None:
    for s in esistenti:
        if s.numero != candidata.numero and s.data == candidata.data and s.fascia.si_sovrappone(candidata.fascia):
            return s
    return None


def valida_selezione(esistenti: Iterable[SessioneScelta], candidata: SessioneScelta) -> dict[str, Any]:
    """Esito serializzabile: {"ok": True} oppure {"error": "Overlap"}."""
    if _in_conflitto(esistenti, candidata) is not None:
        return {"error": "Overlap"}
    return {"ok": True}


class SelezioneSessioni:
    """
    Scelta delle N sessioni di un pacchetto, prima del pagamento.
    Stato effimero del flusso di prenotazione: si scarta all'annullamento.
    """

    def __init__(self, sessioni_richieste: int) -> None:
        if sessioni_richieste < 1:
            raise ValueError("Un pacchetto richiede almeno una sessione")
        self.sessioni_richieste = sessioni_richieste
        self._per_numero: dict[int, SessioneScelta] = {}

    def __len__(self) -> int:
        return len(self._per_numero)

    def __contains__(self, numero: object) -> bool:
        return numero in self._per_numero

    @property
    def sessioni(self) -> list[SessioneScelta]:
        return sorted(self._per_numero.values(), key=lambda s: s.numero)

    def get(self, numero: int) -> SessioneScelta | None:
        return self._per_numero.get(numero)

    def assegna(self, numero: int, data: DataLike, fascia: Fascia) -> SessioneScelta:
        """Riassegnare un numero già scelto lo sostituisce."""
        if not 1 <= numero <= self.sessioni_richieste:
            raise ValueError(f"Sessione {numero} fuori da 1..{self.sessioni_richieste}")

        candidata = SessioneScelta(numero=numero, data=a_data(data), fascia=fascia)
        conflitto = _in_conflitto(self._per_numero.values(), candidata)
        if conflitto is not None:
            logger.info("Sessione %d (%s %s) rifiutata: si sovrappone alla sessione %d", numero, candidata.data, fascia, conflitto.numero)
            raise Sovrapposizione()

        self._per_numero[numero] = candidata
        return candidata

    def rimuovi(self, numero: int) -> None:
        self._per_numero.pop(numero, None)

    def prossima_libera(self) -> int | None:
        for n in range(1, self.sessioni_richieste + 1):
            if n not in self._per_numero:
                return n
        return None

    def completa(self) -> bool:
        return len(self._per_numero) == self.sessioni_richieste

    def finalizza(self) -> list[SessioneScelta]:
        if not self.completa():
            raise SelezioneIncompleta(
                f"Selezionate {len(self._per_numero)} sessioni su {self.sessioni_richieste}"
            )
        return self.sessioni

    def richiesta_prenotazione(
        self,
        pacchetto_id: int | str,
        paziente: DatiPaziente,
        modalita: Modalita = Modalita.ENTRAMBE,
    ) -> dict[str, Any]:
        """Payload per il backend prenotazioni (il pagamento resta fuori da qui)."""
        sessioni = self.finalizza()
        # Un pacchetto "ambas" si prenota online.
        scelta = Modalita.ONLINE if modalita is Modalita.ENTRAMBE else modalita
        return {
            "paqueteId": pacchetto_id,
            "sesiones": [
                {"fecha": formatta_data_locale(s.data), "horaInicio": s.fascia.inizio, "horaFin": s.fascia.fine}
                for s in sessioni
            ],
            **paziente.to_json(),
            "modalidad": scelta.value,
        }

    # ---- bozza ----
    def salva_bozza(self, archivio: Archivio, chiave: str) -> None:
        archivio.scrivi(
            PREFISSO_BOZZA + chiave,
            {"richieste": self.sessioni_richieste, "sessioni": [s.to_json() for s in self.sessioni]},
        )

    @classmethod
    def ripristina(cls, archivio: Archivio, chiave: str) -> "SelezioneSessioni | None":
        bozza = archivio.leggi(PREFISSO_BOZZA + chiave)
        if not bozza:
            return None
        selezione = cls(int(bozza["richieste"]))
        for raw in bozza.get("sessioni", []):
            s = SessioneScelta.da_json(raw)
            selezione.assegna(s.numero, s.data, s.fascia)
        return selezione

    @staticmethod
    def scarta_bozza(archivio: Archivio, chiave: str) -> bool:
        return archivio.elimina(PREFISSO_BOZZA + chiave)
