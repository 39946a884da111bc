from __future__ import annotations

from datetime import date, timedelta

from .appuntamenti import RegistroAppuntamenti
from .dominio import Appuntamento, Eccezione, Modalita, TipoEccezione
from .eccezioni import RegistroEccezioni
from .orari import Fascia, lunedi_della_settimana
from .settimanale import FERIALI, OrarioSettimanale
from .sorgenti import SorgenteMemoria


def orario_demo() -> OrarioSettimanale:
    """
    Orario tipo di uno studio:
    - lun-ven 09:00-18:00 con pausa pranzo 13:00-14:00
    - sabato mattina solo online
    - domenica chiuso
    """
    orario = OrarioSettimanale()
    orario.imposta_giorno(1, OrarioSettimanale.da_orario_con_pause(1, "09:00", "18:00", [("13:00", "14:00")]))
    orario.applica_ai_feriali(1)
    orario.imposta_giorno(6, [Fascia.crea("09:00", "13:00")], modalita=Modalita.ONLINE)
    return orario


def sorgente_demo(oggi: date | None = None) -> SorgenteMemoria:
    """
    Sorgente in memoria popolata per la settimana di `oggi` (default: oggi).
    Ogni chiamata riparte da zero, quindi è idempotente.
    """
    lunedi = lunedi_della_settimana(oggi or date.today())
    giorno = {g: lunedi + timedelta(days=g - 1) for g in FERIALI}  # 1=lunedì ... 5=venerdì

    eccezioni = RegistroEccezioni()
    eccezioni.aggiungi(
        Eccezione(giorno[2], Fascia.crea("10:00", "11:00"), TipoEccezione.BLOCCO, "Riunione di équipe")
    )
    eccezioni.aggiungi(
        Eccezione(giorno[4], Fascia.crea("13:00", "14:00"), TipoEccezione.APERTURA, "Apertura straordinaria")
    )
    eccezioni.aggiungi(
        Eccezione(giorno[5], Fascia.crea("16:00", "18:00"), TipoEccezione.BLOCCO, "Formazione")
    )

    appuntamenti = RegistroAppuntamenti(
        [
            Appuntamento(1, giorno[1], "09:00", 60, "Rossi Mario", "confirmada"),
            Appuntamento(2, giorno[1], "15:30", 30, "Bianchi Laura", "confirmada"),
            Appuntamento(3, giorno[3], "11:00", 90, "Verdi Anna", "pendiente"),
        ]
    )

    return SorgenteMemoria(orario_demo(), eccezioni, appuntamenti)
