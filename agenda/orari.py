"""
Utility su orari e date.

Regole:
- gli orari viaggiano come stringhe "HH:MM" (i secondi vengono scartati)
- le date sono `datetime.date` immutabili: ogni trasformazione crea un nuovo valore
- la formattazione "YYYY-MM-DD" usa solo anno/mese/giorno dell'oggetto, mai conversioni UTC
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterator, Union

from .errori import OrarioNonValido

OraLike = Union[str, time, timedelta]
DataLike = Union[str, date, datetime]


def normalizza_ora(valore: OraLike) -> str:
    """
    "9:5" -> "09:05", "09:00:00" -> "09:00".
    Accetta anche time e timedelta (tempo dalla mezzanotte, come arriva da alcuni driver DB).
    """
    if isinstance(valore, time):
        return f"{valore.hour:02d}:{valore.minute:02d}"
    if isinstance(valore, timedelta):
        minuti_totali = int(valore.total_seconds()) // 60
        ore, minuti = divmod(minuti_totali, 60)
        if not 0 <= ore <= 24:
            raise OrarioNonValido(f"Orario fuori giornata: {valore!r}")
        return f"{ore:02d}:{minuti:02d}"
    if not isinstance(valore, str):
        raise OrarioNonValido(f"Orario non valido: {valore!r}")

    parti = [p.strip() for p in valore.strip().split(":")]
    if len(parti) < 2 or not all(p.isdigit() for p in parti):
        raise OrarioNonValido(f"Orario non valido: {valore!r} (atteso HH:MM)")

    ore, minuti = int(parti[0]), int(parti[1])
    if ore > 24 or minuti > 59 or (ore == 24 and minuti > 0):
        raise OrarioNonValido(f"Orario non valido: {valore!r}")
    return f"{ore:02d}:{minuti:02d}"


def in_minuti(ora: OraLike) -> int:
    h, m = normalizza_ora(ora).split(":")
    return int(h) * 60 + int(m)


def da_minuti(minuti: int) -> str:
    ore, resto = divmod(minuti, 60)
    return f"{ore:02d}:{resto:02d}"


def durata_minuti(inizio: OraLike, fine: OraLike) -> int:
    # Nessun clamp: una coppia invertita produce un valore negativo.
    return in_minuti(fine) - in_minuti(inizio)


def aggiungi_minuti(ora: OraLike, minuti: int) -> str:
    return da_minuti(in_minuti(ora) + minuti)


def etichette_orarie(apertura: OraLike = "08:00", chiusura: OraLike = "20:00", passo: int = 30) -> list[str]:
    """Etichette della griglia, da apertura a chiusura inclusa."""
    if passo <= 0:
        raise ValueError("Il passo della griglia deve essere > 0")
    inizio, fine = in_minuti(apertura), in_minuti(chiusura)
    return [da_minuti(m) for m in range(inizio, fine + 1, passo)]


# =========================
# Date
# =========================
def a_data(valore: DataLike) -> date:
    if isinstance(valore, datetime):
        return valore.date()
    if isinstance(valore, date):
        return valore
    if isinstance(valore, str):
        try:
            return date.fromisoformat(valore.strip()[:10])
        except ValueError as e:
            raise ValueError(f"Data non valida: {valore!r} (atteso YYYY-MM-DD)") from e
    raise TypeError(f"Impossibile convertire {type(valore).__name__} in data")


def formatta_data_locale(d: date | datetime) -> str:
    # Solo campi locali dell'oggetto: niente isoformat()/astimezone() per evitare slittamenti di giorno.
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


def lunedi_della_settimana(d: DataLike) -> date:
    """Il lunedì della settimana di `d`. La domenica appartiene alla settimana iniziata 6 giorni prima."""
    giorno = a_data(d)
    return giorno - timedelta(days=giorno.weekday())


def giorno_settimana(d: DataLike) -> int:
    """Chiave del giorno: 0=domenica ... 6=sabato."""
    return (a_data(d).weekday() + 1) % 7


def giorni_tra(inizio: DataLike, fine: DataLike) -> Iterator[date]:
    corrente, ultimo = a_data(inizio), a_data(fine)
    while corrente <= ultimo:
        yield corrente
        corrente = corrente + timedelta(days=1)


def giorni_della_settimana(d: DataLike) -> list[date]:
    lunedi = lunedi_della_settimana(d)
    return [lunedi + timedelta(days=i) for i in range(7)]


# =========================
# Fascia oraria
# =========================
@dataclass(frozen=True, order=True)
class Fascia:
    """Intervallo semiaperto [inizio, fine) su una giornata."""

    inizio: str  # HH:MM
    fine: str  # HH:MM

    @classmethod
    def crea(cls, inizio: OraLike, fine: OraLike) -> "Fascia":
        a, b = normalizza_ora(inizio), normalizza_ora(fine)
        if in_minuti(a) >= in_minuti(b):
            raise OrarioNonValido(f"Inizio ({a}) deve essere minore di fine ({b})")
        return cls(a, b)

    @property
    def minuto_inizio(self) -> int:
        return in_minuti(self.inizio)

    @property
    def minuto_fine(self) -> int:
        return in_minuti(self.fine)

    @property
    def durata(self) -> int:
        return self.minuto_fine - self.minuto_inizio

    def contiene(self, ora: OraLike) -> bool:
        return self.minuto_inizio <= in_minuti(ora) < self.minuto_fine

    def si_sovrappone(self, altra: "Fascia") -> bool:
        return sovrapposte(self.minuto_inizio, self.minuto_fine, altra.minuto_inizio, altra.minuto_fine)

    def __str__(self) -> str:
        return f"{self.inizio}-{self.fine}"


def sovrapposte(inizio_a: int, fine_a: int, inizio_b: int, fine_b: int) -> bool:
    """Sovrapposizione [start,end): gli intervalli adiacenti non si sovrappongono."""
    return inizio_a < fine_b and fine_a > inizio_b
