"""
Orario settimanale ricorrente (template di disponibilità per giorno della settimana).

Chiavi dei giorni: 0=domenica ... 6=sabato.
Le liste per giorno non sono mai condivise: ogni scrittura salva una copia nuova.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Sequence

from .dominio import BloccoSettimanale, Modalita
from .errori import OrarioNonValido
from .orari import Fascia, OraLike, da_minuti, in_minuti

logger = logging.getLogger(__name__)

GIORNI = range(7)
FERIALI = (1, 2, 3, 4, 5)

NOMI_GIORNI = {
    "domingo": 0,
    "lunes": 1,
    "martes": 2,
    "miercoles": 3,
    "miércoles": 3,
    "jueves": 4,
    "viernes": 5,
    "sabado": 6,
    "sábado": 6,
}


def giorno_da_chiave(chiave: str | int) -> int:
    """
    Converte le chiavi usate dalle sorgenti in 0..6:
    nomi spagnoli ("lunes"), oppure numeri 1(lun)..7(dom).
    """
    if isinstance(chiave, int) or (isinstance(chiave, str) and chiave.strip().isdigit()):
        n = int(chiave)
        if not 0 <= n <= 7:
            raise ValueError(f"Giorno della settimana non valido: {chiave!r}")
        return n % 7
    try:
        return NOMI_GIORNI[chiave.strip().lower()]
    except KeyError as e:
        raise ValueError(f"Giorno della settimana sconosciuto: {chiave!r}") from e


class OrarioSettimanale:
    def __init__(self, blocchi: Iterable[BloccoSettimanale] = ()) -> None:
        self._per_giorno: dict[int, list[BloccoSettimanale]] = {g: [] for g in GIORNI}
        for b in blocchi:
            self._per_giorno[b.giorno].append(b)

    # ---- lettura ----
    def blocchi_del_giorno(self, giorno: int) -> list[BloccoSettimanale]:
        return list(self._per_giorno[self._valida_giorno(giorno)])

    def fasce_del_giorno(self, giorno: int) -> list[Fascia]:
        """Ordine di inserimento: chi ha bisogno dell'ordine cronologico ordina da sé."""
        return [b.fascia for b in self._per_giorno[self._valida_giorno(giorno)]]

    def giorni_attivi(self) -> list[int]:
        return [g for g in GIORNI if self._per_giorno[g]]

    def __iter__(self):
        for g in GIORNI:
            yield from self._per_giorno[g]

    def __len__(self) -> int:
        return sum(len(v) for v in self._per_giorno.values())

    # ---- scrittura ----
    def imposta_giorno(
        self,
        giorno: int,
        blocchi: Iterable[BloccoSettimanale | Fascia],
        modalita: Modalita = Modalita.ENTRAMBE,
    ) -> None:
        """Sostituisce in blocco la configurazione del giorno (nessun merge)."""
        giorno = self._valida_giorno(giorno)
        nuovi: list[BloccoSettimanale] = []
        for b in blocchi:
            if isinstance(b, Fascia):
                nuovi.append(BloccoSettimanale(giorno=giorno, fascia=b, modalita=modalita))
            else:
                nuovi.append(BloccoSettimanale(giorno=giorno, fascia=b.fascia, modalita=b.modalita))
        self._per_giorno[giorno] = nuovi

    def svuota_giorno(self, giorno: int) -> None:
        self._per_giorno[self._valida_giorno(giorno)] = []

    def copia_giorno(self, origine: int, destinazione: int) -> None:
        self.imposta_giorno(destinazione, self.blocchi_del_giorno(origine))

    def applica_a_tutti(self, origine: int) -> None:
        self._applica(origine, GIORNI)

    def applica_ai_feriali(self, origine: int) -> None:
        self._applica(origine, FERIALI)

    def _applica(self, origine: int, destinazioni: Iterable[int]) -> None:
        base = self.blocchi_del_giorno(origine)
        if not base:
            raise ValueError(f"Il giorno {origine} non ha fasce da copiare")
        for g in destinazioni:
            if g != origine:
                self.imposta_giorno(g, base)

    # ---- conversioni ----
    @staticmethod
    def da_orario_con_pause(
        giorno: int,
        apertura: OraLike,
        chiusura: OraLike,
        pause: Sequence[tuple[OraLike, OraLike]] = (),
        modalita: Modalita = Modalita.ENTRAMBE,
    ) -> list[BloccoSettimanale]:
        """
        Orario di lavoro + pause -> fasce disponibili.
        Es. 09:00-18:00 con pausa 13:00-14:00 -> [09:00-13:00, 14:00-18:00].
        """
        fine_giornata = in_minuti(chiusura)
        corrente = in_minuti(apertura)
        fasce: list[Fascia] = []

        for p_inizio, p_fine in sorted(pause, key=lambda p: in_minuti(p[0])):
            pausa = Fascia.crea(p_inizio, p_fine)
            fine_fascia = min(pausa.minuto_inizio, fine_giornata)
            if fine_fascia > corrente:
                fasce.append(Fascia.crea(da_minuti(corrente), da_minuti(fine_fascia)))
            corrente = max(corrente, pausa.minuto_fine)

        if corrente < fine_giornata:
            fasce.append(Fascia.crea(da_minuti(corrente), da_minuti(fine_giornata)))

        return [BloccoSettimanale(giorno=giorno, fascia=f, modalita=modalita) for f in fasce]

    def righe(self) -> list[dict[str, Any]]:
        """Righe piatte per il salvataggio lato backend, senza duplicati (giorno, inizio, fine, modalità)."""
        viste: set[tuple[int, str, str, str]] = set()
        righe: list[dict[str, Any]] = []
        for b in self:
            chiave = (b.giorno, b.fascia.inizio, b.fascia.fine, b.modalita.value)
            if chiave in viste:
                logger.warning("Fascia settimanale duplicata ignorata: %s", chiave)
                continue
            viste.add(chiave)
            righe.append({**b.to_json(), "activo": True})
        return righe

    @classmethod
    def da_json(cls, payload: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None) -> "OrarioSettimanale":
        """
        Accetta:
        - {"horarioSemanal": {"lunes": [{"hora_inicio"|"inicio", "hora_fin"|"fin", "modalidad"}], ...}}
        - la mappa giorno -> blocchi senza involucro
        - righe piatte [{"dia_semana": 0..6, "hora_inicio", "hora_fin", "modalidad"}]
        Blocchi incompleti o con orari non validi vengono scartati con un warning.
        """
        orario = cls()
        if not payload:
            return orario

        if isinstance(payload, Mapping):
            mappa = payload.get("horarioSemanal", payload)
            elementi = [
                (giorno_da_chiave(chiave), blocco)
                for chiave, blocchi in mappa.items()
                if isinstance(blocchi, list)
                for blocco in blocchi
            ]
        else:
            elementi = [(giorno_da_chiave(r["dia_semana"]), r) for r in payload if "dia_semana" in r]

        for giorno, blocco in elementi:
            if not isinstance(blocco, Mapping):
                logger.warning("Blocco settimanale non valido ignorato: %r", blocco)
                continue
            inizio = blocco.get("hora_inicio") or blocco.get("inicio")
            fine = blocco.get("hora_fin") or blocco.get("fin")
            if not inizio or not fine:
                logger.warning("Blocco settimanale incompleto ignorato (giorno %s): %r", giorno, blocco)
                continue
            try:
                fascia = Fascia.crea(inizio, fine)
            except OrarioNonValido as e:
                logger.warning("Blocco settimanale con orario non valido ignorato (giorno %s): %s", giorno, e)
                continue
            orario._per_giorno[giorno].append(
                BloccoSettimanale(giorno=giorno, fascia=fascia, modalita=Modalita.da_valore(blocco.get("modalidad")))
            )
        return orario

    @staticmethod
    def _valida_giorno(giorno: int) -> int:
        if giorno not in GIORNI:
            raise ValueError(f"Giorno della settimana non valido: {giorno} (atteso 0..6)")
        return giorno
