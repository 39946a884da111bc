"""
Matrice di disponibilità settimanale.

Per ogni (data, etichetta oraria) calcola lo stato della cella, in ordine di precedenza:
1. occupato      -> un appuntamento copre l'orario
2. bloccato      -> un'eccezione di blocco copre l'orario
3. disponibile   -> un'apertura straordinaria copre l'orario, oppure (nessuna eccezione sull'orario)
                    una fascia dell'orario settimanale lo copre
4. fuori orario  -> nient'altro

La funzione è pura: nessuno stato sopravvive tra due chiamate.
"""
from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import date
from typing import Any, Iterable, Mapping

from .dominio import Appuntamento, BloccoSettimanale, Cella, Eccezione, StatoCella, TipoEccezione, chiave_cella
from .errori import OrarioNonValido
from .orari import DataLike, a_data, giorni_tra, giorno_settimana, in_minuti, normalizza_ora
from .settimanale import OrarioSettimanale

logger = logging.getLogger(__name__)


def costruisci_matrice(
    inizio: DataLike,
    fine: DataLike,
    etichette: Iterable[str],
    orario: OrarioSettimanale,
    eccezioni: Iterable[Eccezione | Mapping[str, Any]],
    appuntamenti: Iterable[Appuntamento | Mapping[str, Any]],
    slot_minuti: int = 30,
    scartati: list[Any] | None = None,
) -> dict[str, Cella]:
    """
    Ritorna {"YYYY-MM-DD_HH:MM": Cella} per ogni giorno in [inizio, fine] e ogni etichetta.

    Record inutilizzabili (durata <= 0, orari non normalizzabili) vengono scartati con un warning
    e, se passata, aggiunti alla lista `scartati`: la matrice viene costruita comunque.
    """
    if slot_minuti <= 0:
        raise ValueError("slot_minuti deve essere > 0")

    orari_griglia = [(normalizza_ora(e), in_minuti(e)) for e in etichette]
    app_per_data = _indicizza_appuntamenti(appuntamenti, scartati)
    ecc_per_data = _indicizza_eccezioni(eccezioni, scartati)

    matrice: dict[str, Cella] = {}
    contatori: dict[StatoCella, int] = defaultdict(int)

    for giorno in giorni_tra(inizio, fine):
        settimanali = orario.blocchi_del_giorno(giorno_settimana(giorno))
        del_giorno = app_per_data.get(giorno, [])
        ecc_del_giorno = ecc_per_data.get(giorno, [])
        ancorati: set[int] = set()

        for ora, minuto in orari_griglia:
            cella = _cella(giorno, ora, minuto, del_giorno, ecc_del_giorno, settimanali, ancorati, slot_minuti)
            matrice[cella.chiave] = cella
            contatori[cella.stato] += 1

        _senza_ancora(giorno, del_giorno, ancorati, orari_griglia, scartati)

    logger.debug(
        "Matrice %s..%s: %d celle (%s)",
        a_data(inizio),
        a_data(fine),
        len(matrice),
        ", ".join(f"{s.value}={n}" for s, n in contatori.items()),
    )
    return matrice


def _cella(
    giorno: date,
    ora: str,
    minuto: int,
    appuntamenti: list[tuple[Appuntamento, int, int]],
    eccezioni: list[Eccezione],
    settimanali: list[BloccoSettimanale],
    ancorati: set[int],
    slot_minuti: int,
) -> Cella:
    # 1. occupato
    coprenti = [(fin, i, a) for i, (a, ini, fin) in enumerate(appuntamenti) if ini <= minuto < fin]
    if coprenti:
        # con appuntamenti sovrapposti ancora per primo quello che finisce prima
        da_ancorare = [c for c in coprenti if c[1] not in ancorati]
        if da_ancorare:
            _, i, a = min(da_ancorare, key=lambda c: (c[0], c[1]))
            ancorati.add(i)
            return Cella(
                giorno,
                ora,
                StatoCella.OCCUPATO,
                appuntamento=a,
                ancora=True,
                celle_occupate=math.ceil(a.durata / slot_minuti),
            )
        return Cella(giorno, ora, StatoCella.OCCUPATO, continuazione=True)

    # 2. bloccato (con blocchi sovrapposti vince comunque il primo che copre)
    sull_orario = [e for e in eccezioni if e.fascia.minuto_inizio <= minuto < e.fascia.minuto_fine]
    for e in sull_orario:
        if e.tipo is TipoEccezione.BLOCCO:
            return Cella(giorno, ora, StatoCella.BLOCCATO, eccezione=e)

    # 3. disponibile
    for e in sull_orario:
        if e.tipo is TipoEccezione.APERTURA:
            return Cella(giorno, ora, StatoCella.DISPONIBILE, eccezione=e)
    for b in settimanali:
        if b.fascia.minuto_inizio <= minuto < b.fascia.minuto_fine:
            return Cella(giorno, ora, StatoCella.DISPONIBILE, modalita=b.modalita)

    # 4. fuori orario
    return Cella(giorno, ora, StatoCella.FUORI_ORARIO)


def _senza_ancora(
    giorno: date,
    appuntamenti: list[tuple[Appuntamento, int, int]],
    ancorati: set[int],
    orari_griglia: list[tuple[str, int]],
    scartati: list[Any] | None,
) -> None:
    """Appuntamenti visibili sulla griglia ma coperti interamente da altre ancore: segnalati in `scartati`."""
    for i, (a, ini, fin) in enumerate(appuntamenti):
        if i in ancorati or not any(ini <= m < fin for _, m in orari_griglia):
            continue
        logger.warning("Appuntamento %s del %s senza cella propria: sovrapposto ad altri appuntamenti", a.id, giorno)
        if scartati is not None:
            scartati.append(a)


def _indicizza_appuntamenti(
    appuntamenti: Iterable[Appuntamento | Mapping[str, Any]],
    scartati: list[Any] | None,
) -> dict[date, list[tuple[Appuntamento, int, int]]]:
    per_data: dict[date, list[tuple[Appuntamento, int, int]]] = defaultdict(list)
    for raw in appuntamenti:
        try:
            a = raw if isinstance(raw, Appuntamento) else Appuntamento.da_json(raw)
            inizio, fine = a.intervallo()
        except (OrarioNonValido, KeyError, ValueError, TypeError) as e:
            logger.warning("Appuntamento scartato dalla matrice: %s (%r)", e, raw)
            if scartati is not None:
                scartati.append(raw)
            continue
        per_data[a.data].append((a, inizio, fine))
    return per_data


def _indicizza_eccezioni(
    eccezioni: Iterable[Eccezione | Mapping[str, Any]],
    scartati: list[Any] | None,
) -> dict[date, list[Eccezione]]:
    per_data: dict[date, list[Eccezione]] = defaultdict(list)
    for raw in eccezioni:
        try:
            e = raw if isinstance(raw, Eccezione) else Eccezione.da_json(raw)
        except (OrarioNonValido, KeyError, ValueError, TypeError) as err:
            logger.warning("Eccezione scartata dalla matrice: %s (%r)", err, raw)
            if scartati is not None:
                scartati.append(raw)
            continue
        per_data[e.data].append(e)
    return per_data


# =========================
# Letture derivate
# =========================
def riepilogo_giorni(matrice: Mapping[str, Cella]) -> dict[date, bool]:
    """Per ogni data della matrice: True se ha almeno una cella disponibile."""
    riepilogo: dict[date, bool] = {}
    for cella in matrice.values():
        riepilogo[cella.data] = riepilogo.get(cella.data, False) or cella.stato is StatoCella.DISPONIBILE
    return riepilogo


def orari_liberi(matrice: Mapping[str, Cella], giorno: DataLike) -> list[str]:
    g = a_data(giorno)
    return sorted(
        (c.ora for c in matrice.values() if c.data == g and c.stato is StatoCella.DISPONIBILE),
        key=in_minuti,
    )


def leggi_cella(matrice: Mapping[str, Cella], giorno: DataLike, ora: str) -> Cella | None:
    return matrice.get(chiave_cella(a_data(giorno), normalizza_ora(ora)))
