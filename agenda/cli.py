from __future__ import annotations

import argparse
import json
import sys
from datetime import date

from .caricatore import CaricatoreSettimana
from .config import load_settings
from .dominio import StatoCella, chiave_cella
from .errori import ErroreAgenda
from .logs import configura_logging
from .matrice import costruisci_matrice
from .orari import Fascia, a_data, etichette_orarie, formatta_data_locale, giorni_tra
from .seed import sorgente_demo
from .sessioni import SelezioneSessioni
from .sorgenti import Sorgente, SorgenteRest

SIMBOLI = {
    StatoCella.DISPONIBILE: ".",
    StatoCella.OCCUPATO: "X",
    StatoCella.BLOCCATO: "#",
    StatoCella.FUORI_ORARIO: " ",
}
GIORNI_BREVI = ["Lun", "Mar", "Mer", "Gio", "Ven", "Sab", "Dom"]


def _sorgente(args: argparse.Namespace, giorno: date | None = None) -> Sorgente:
    settings = load_settings()
    fonte = args.fonte or settings.fonte
    if fonte == "demo":
        return sorgente_demo(giorno)
    return SorgenteRest.da_settings(settings)


def stampa_griglia(matrice: dict, inizio: date, fine: date, etichette: list[str]) -> None:
    giorni = list(giorni_tra(inizio, fine))
    print("       " + " ".join(f"{GIORNI_BREVI[g.weekday()]} {g.day:02d}" for g in giorni))
    for ora in etichette:
        riga = []
        for g in giorni:
            cella = matrice.get(chiave_cella(g, ora))
            simbolo = SIMBOLI[cella.stato] if cella else "?"
            if cella and cella.ancora:
                simbolo = f"X{cella.celle_occupate}"
            riga.append(simbolo.center(6))
        print(f"{ora}  " + " ".join(riga))
    print("\nLegenda: . disponibile | X occupato (Xn = n celle) | # bloccato | vuoto = fuori orario")


def cmd_settimana(args: argparse.Namespace) -> None:
    giorno = a_data(args.giorno) if args.giorno else date.today()
    with CaricatoreSettimana(_sorgente(args, giorno)) as caricatore:
        matrice = caricatore.carica(giorno)
        inizio, fine = caricatore.richiesta
        print(f"Settimana {formatta_data_locale(inizio)} .. {formatta_data_locale(fine)}")
        stampa_griglia(matrice, inizio, fine, caricatore.etichette)
        if caricatore.scartati:
            print(f"Attenzione: {len(caricatore.scartati)} record scartati (vedi log).")


def cmd_matrice(args: argparse.Namespace) -> None:
    settings = load_settings()
    inizio, fine = a_data(args.inizio), a_data(args.fine)
    etichette = etichette_orarie(settings.ora_apertura, settings.ora_chiusura, settings.slot_minuti)

    with CaricatoreSettimana(_sorgente(args, inizio), settings=settings) as caricatore:
        dati = caricatore.scarica(inizio, fine)

    matrice = costruisci_matrice(
        inizio, fine, etichette, dati.orario, dati.eccezioni, dati.appuntamenti, slot_minuti=settings.slot_minuti
    )
    if args.json:
        print(json.dumps({k: c.to_json() for k, c in matrice.items()}, indent=2, ensure_ascii=False))
        return

    for chiave, cella in matrice.items():
        if args.solo_libere and cella.stato is not StatoCella.DISPONIBILE:
            continue
        extra = ""
        if cella.appuntamento:
            extra = f" | {cella.appuntamento.paziente} ({cella.appuntamento.durata} min)"
        elif cella.eccezione:
            extra = f" | {cella.eccezione.descrizione or cella.eccezione.tipo.value}"
        print(f"{chiave} | {cella.stato.value}{extra}")


def cmd_sessioni(args: argparse.Namespace) -> None:
    """
    Simula la scelta delle sessioni di un pacchetto:
    ogni --sessione è "numero,YYYY-MM-DD,HH:MM,HH:MM".
    """
    selezione = SelezioneSessioni(args.richieste)
    for testo in args.sessione:
        numero, giorno, inizio, fine = [p.strip() for p in testo.split(",")]
        selezione.assegna(int(numero), giorno, Fascia.crea(inizio, fine))
        print(f"Sessione {numero} assegnata: {giorno} {inizio}-{fine}")

    prossima = selezione.prossima_libera()
    if prossima is not None:
        print(f"Manca ancora la sessione {prossima} (scelte {len(selezione)}/{args.richieste}).")
        return

    for s in selezione.finalizza():
        print(f"{s.numero} | {formatta_data_locale(s.data)} | {s.fascia}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="agenda_cli", description="CLI Agenda Studio (matrice disponibilità e sessioni)")
    p.add_argument("-v", "--verbose", action="store_true", help="Log dettagliati")
    sub = p.add_subparsers(required=True)

    p_sett = sub.add_parser("settimana", help="Griglia della settimana")
    p_sett.add_argument("--giorno", default=None, help="Un giorno della settimana, es: 2025-01-08 (default: oggi)")
    p_sett.add_argument("--fonte", choices=["demo", "rest"], default=None)
    p_sett.set_defaults(func=cmd_settimana)

    p_mat = sub.add_parser("matrice", help="Celle della matrice per un intervallo di date")
    p_mat.add_argument("--inizio", required=True)
    p_mat.add_argument("--fine", required=True)
    p_mat.add_argument("--fonte", choices=["demo", "rest"], default=None)
    p_mat.add_argument("--solo-libere", action="store_true", help="Mostra solo le celle disponibili")
    p_mat.add_argument("--json", action="store_true")
    p_mat.set_defaults(func=cmd_matrice)

    p_sess = sub.add_parser("sessioni", help="Valida la scelta delle sessioni di un pacchetto")
    p_sess.add_argument("--richieste", type=int, required=True)
    p_sess.add_argument("--sessione", action="append", default=[], help="numero,YYYY-MM-DD,HH:MM,HH:MM")
    p_sess.set_defaults(func=cmd_sessioni)

    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configura_logging(verbose=args.verbose)
    try:
        args.func(args)
    except (ErroreAgenda, ValueError) as e:
        print(f"Errore: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
