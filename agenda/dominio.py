from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date
from typing import Any

from .errori import OrarioNonValido
from .orari import Fascia, a_data, formatta_data_locale, in_minuti


class Modalita(enum.Enum):
    ONLINE = "online"
    PRESENZA = "presencial"
    ENTRAMBE = "ambas"

    @classmethod
    def da_valore(cls, valore: str | None) -> "Modalita":
        v = (valore or "").strip().lower()
        if v in {"online"}:
            return cls.ONLINE
        if v in {"presencial", "presenza", "inperson", "in_person"}:
            return cls.PRESENZA
        return cls.ENTRAMBE


class TipoEccezione(enum.Enum):
    BLOCCO = "bloqueo"
    APERTURA = "disponible"

    @classmethod
    def da_valore(cls, valore: str | None) -> "TipoEccezione":
        # Ogni tipo diverso da un'apertura esplicita (ferie, festivo, ...) blocca l'agenda.
        v = (valore or "").strip().lower()
        if v in {"disponible", "disponibile", "available", "apertura"}:
            return cls.APERTURA
        return cls.BLOCCO


class StatoCella(enum.Enum):
    DISPONIBILE = "disponible"
    OCCUPATO = "ocupado"
    BLOCCATO = "bloqueado"
    FUORI_ORARIO = "fuera-horario"


@dataclass(frozen=True)
class BloccoSettimanale:
    giorno: int  # 0=domenica ... 6=sabato
    fascia: Fascia
    modalita: Modalita = Modalita.ENTRAMBE

    def __post_init__(self) -> None:
        if not 0 <= self.giorno <= 6:
            raise ValueError(f"Giorno della settimana non valido: {self.giorno} (atteso 0..6)")

    def to_json(self) -> dict[str, Any]:
        return {
            "dia_semana": self.giorno,
            "hora_inicio": self.fascia.inizio,
            "hora_fin": self.fascia.fine,
            "modalidad": self.modalita.value,
        }


@dataclass(frozen=True)
class Eccezione:
    """Blocco manuale o apertura straordinaria per una data precisa."""

    data: date
    fascia: Fascia
    tipo: TipoEccezione = TipoEccezione.BLOCCO
    descrizione: str = ""
    id: int | str | None = None

    @property
    def chiave(self) -> tuple[date, str, str, TipoEccezione]:
        return (self.data, self.fascia.inizio, self.fascia.fine, self.tipo)

    @classmethod
    def da_json(cls, raw: dict[str, Any]) -> "Eccezione":
        return cls(
            data=a_data(raw["fecha"]),
            fascia=Fascia.crea(raw["hora_inicio"], raw["hora_fin"]),
            tipo=TipoEccezione.da_valore(raw.get("tipo")),
            descrizione=raw.get("descripcion") or "",
            id=raw.get("id"),
        )

    def to_json(self) -> dict[str, Any]:
        dati: dict[str, Any] = {
            "fecha": formatta_data_locale(self.data),
            "hora_inicio": self.fascia.inizio,
            "hora_fin": self.fascia.fine,
            "tipo": self.tipo.value,
            "descripcion": self.descrizione,
        }
        if self.id is not None:
            dati["id"] = self.id
        return dati

    def __str__(self) -> str:
        etichetta = f"#{self.id} " if self.id is not None else ""
        return f"{etichetta}{formatta_data_locale(self.data)} {self.fascia} ({self.tipo.value})"


@dataclass(frozen=True)
class Appuntamento:
    """
    Sessione prenotata (di proprietà del sistema prenotazioni/pagamenti).
    `ora` resta grezza: la validazione avviene in lettura, dove i record rotti vengono scartati.
    """

    id: int | str
    data: date
    ora: str
    durata: int
    paziente: str = ""
    stato: str = ""

    def intervallo(self) -> tuple[int, int]:
        """[inizio, fine) in minuti dalla mezzanotte. Solleva OrarioNonValido se il record è inutilizzabile."""
        if self.durata is None or self.durata <= 0:
            raise OrarioNonValido(f"Durata non valida ({self.durata}) per appuntamento {self.id}")
        inizio = in_minuti(self.ora)
        return inizio, inizio + self.durata

    @classmethod
    def da_json(cls, raw: dict[str, Any]) -> "Appuntamento":
        return cls(
            id=raw["id"],
            data=a_data(raw["fecha"]),
            ora=str(raw.get("hora") or ""),
            durata=int(raw.get("duracion") or 0),
            paziente=raw.get("nombre_paciente") or "",
            stato=raw.get("estado") or "",
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "fecha": formatta_data_locale(self.data),
            "hora": self.ora,
            "duracion": self.durata,
            "nombre_paciente": self.paziente,
            "estado": self.stato,
        }


@dataclass(frozen=True)
class Cella:
    """Cella derivata della matrice: si ricalcola a ogni costruzione, non si salva."""

    data: date
    ora: str
    stato: StatoCella
    appuntamento: Appuntamento | None = None
    eccezione: Eccezione | None = None
    modalita: Modalita | None = None
    ancora: bool = False
    continuazione: bool = False
    celle_occupate: int = 0

    @property
    def chiave(self) -> str:
        return chiave_cella(self.data, self.ora)

    def to_json(self) -> dict[str, Any]:
        return {
            "fecha": formatta_data_locale(self.data),
            "hora": self.ora,
            "estado": self.stato.value,
            "cita": self.appuntamento.to_json() if self.appuntamento else None,
            "bloqueo": self.eccezione.to_json() if self.eccezione else None,
            "modalidad": self.modalita.value if self.modalita else None,
            "es_primer_bloque": self.ancora,
            "es_continuacion": self.continuazione,
            "bloques_ocupados": self.celle_occupate,
        }


def chiave_cella(data: date, ora: str) -> str:
    return f"{formatta_data_locale(data)}_{ora}"


@dataclass(frozen=True)
class SessioneScelta:
    numero: int  # 1..N
    data: date
    fascia: Fascia

    def to_json(self) -> dict[str, Any]:
        return {
            "numero": self.numero,
            "fecha": formatta_data_locale(self.data),
            "horaInicio": self.fascia.inizio,
            "horaFin": self.fascia.fine,
        }

    @classmethod
    def da_json(cls, raw: dict[str, Any]) -> "SessioneScelta":
        return cls(
            numero=int(raw["numero"]),
            data=a_data(raw["fecha"]),
            fascia=Fascia.crea(raw["horaInicio"], raw["horaFin"]),
        )
