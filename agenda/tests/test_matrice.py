from __future__ import annotations

from datetime import date

import pytest

from agenda.dominio import Appuntamento, Eccezione, Modalita, StatoCella, TipoEccezione
from agenda.matrice import costruisci_matrice, leggi_cella, orari_liberi, riepilogo_giorni
from agenda.orari import Fascia, etichette_orarie
from agenda.settimanale import OrarioSettimanale

LUN = date(2025, 1, 6)
DOM = date(2025, 1, 12)
ETICHETTE = etichette_orarie("08:00", "20:00", 30)


def _matrice(orario, eccezioni=(), appuntamenti=(), inizio=LUN, fine=LUN, **kw):
    return costruisci_matrice(inizio, fine, ETICHETTE, orario, list(eccezioni), list(appuntamenti), **kw)


def _blocco(inizio: str, fine: str, giorno: date = LUN, tipo: TipoEccezione = TipoEccezione.BLOCCO) -> Eccezione:
    return Eccezione(giorno, Fascia.crea(inizio, fine), tipo, id=f"{giorno}-{inizio}")


def test_chiavi_e_dimensione(orario_lunedi) -> None:
    matrice = _matrice(orario_lunedi, inizio=LUN, fine=DOM)
    assert len(matrice) == 7 * len(ETICHETTE)
    assert "2025-01-06_08:00" in matrice
    assert "2025-01-12_20:00" in matrice
    assert matrice["2025-01-06_09:00"].ora == "09:00"


def test_blocco_vince_sul_settimanale(orario_lunedi) -> None:
    matrice = _matrice(orario_lunedi, eccezioni=[_blocco("10:00", "11:00")])

    assert matrice["2025-01-06_10:00"].stato is StatoCella.BLOCCATO
    assert matrice["2025-01-06_10:30"].stato is StatoCella.BLOCCATO
    assert matrice["2025-01-06_09:00"].stato is StatoCella.DISPONIBILE
    assert matrice["2025-01-06_11:00"].stato is StatoCella.DISPONIBILE
    assert matrice["2025-01-06_10:00"].eccezione.id == "2025-01-06-10:00"


def test_settimanale_semiaperto(orario_lunedi) -> None:
    matrice = _matrice(orario_lunedi)
    assert matrice["2025-01-06_08:30"].stato is StatoCella.FUORI_ORARIO
    assert matrice["2025-01-06_16:30"].stato is StatoCella.DISPONIBILE
    assert matrice["2025-01-06_17:00"].stato is StatoCella.FUORI_ORARIO
    assert matrice["2025-01-06_09:00"].modalita is Modalita.ENTRAMBE


def test_appuntamento_vince_su_blocco_e_disponibile(orario_lunedi) -> None:
    appuntamenti = [Appuntamento(1, LUN, "10:00", 60), Appuntamento(2, LUN, "14:00", 30)]
    matrice = _matrice(orario_lunedi, eccezioni=[_blocco("10:00", "11:00")], appuntamenti=appuntamenti)

    for ora in ("10:00", "10:30", "14:00"):
        assert matrice[f"2025-01-06_{ora}"].stato is StatoCella.OCCUPATO
    assert matrice["2025-01-06_14:30"].stato is StatoCella.DISPONIBILE


def test_ogni_appuntamento_occupa_le_sue_celle(orario_lunedi) -> None:
    appuntamenti = [
        Appuntamento(1, LUN, "08:00", 30),
        Appuntamento(2, LUN, "12:00", 120),
        Appuntamento(3, LUN, "19:30", 30),
        Appuntamento(4, DOM, "11:00", 60),
    ]
    matrice = _matrice(orario_lunedi, appuntamenti=appuntamenti, inizio=LUN, fine=DOM)

    for a in appuntamenti:
        ini, fin = a.intervallo()
        for cella in matrice.values():
            minuto = int(cella.ora[:2]) * 60 + int(cella.ora[3:])
            if cella.data == a.data and ini <= minuto < fin:
                assert cella.stato is StatoCella.OCCUPATO


def test_ancora_e_continuazione(orario_lunedi) -> None:
    visita = Appuntamento(7, LUN, "09:00:00", 90, "Rossi")
    matrice = _matrice(orario_lunedi, appuntamenti=[visita])

    ancora = matrice["2025-01-06_09:00"]
    assert ancora.ancora and not ancora.continuazione
    assert ancora.appuntamento == visita
    assert ancora.celle_occupate == 3

    for ora in ("09:30", "10:00"):
        cella = matrice[f"2025-01-06_{ora}"]
        assert cella.stato is StatoCella.OCCUPATO
        assert cella.continuazione and not cella.ancora
        assert cella.appuntamento is None

    assert matrice["2025-01-06_10:30"].stato is StatoCella.DISPONIBILE

    # una sola cella porta l'appuntamento
    assert sum(1 for c in matrice.values() if c.appuntamento is not None) == 1


@pytest.mark.parametrize("durata, celle", [(30, 1), (45, 2), (60, 2), (61, 3)])
def test_celle_occupate_arrotondate_per_eccesso(orario_lunedi, durata, celle) -> None:
    matrice = _matrice(orario_lunedi, appuntamenti=[Appuntamento(1, LUN, "09:00", durata)])
    assert matrice["2025-01-06_09:00"].celle_occupate == celle


def test_ancora_sulla_prima_cella_coperta(orario_lunedi) -> None:
    # inizia prima della griglia e a metà slot
    matrice = _matrice(
        orario_lunedi,
        appuntamenti=[Appuntamento(1, LUN, "07:30", 60), Appuntamento(2, LUN, "10:15", 30)],
    )
    assert matrice["2025-01-06_08:00"].ancora
    assert matrice["2025-01-06_08:30"].stato is StatoCella.FUORI_ORARIO
    assert matrice["2025-01-06_10:30"].ancora
    assert matrice["2025-01-06_10:30"].appuntamento.id == 2


def test_appuntamenti_sovrapposti_hanno_ciascuno_la_sua_ancora(orario_lunedi) -> None:
    a = Appuntamento(1, LUN, "10:00", 60)
    b = Appuntamento(2, LUN, "10:30", 60)
    matrice = _matrice(orario_lunedi, appuntamenti=[a, b])

    assert matrice["2025-01-06_10:00"].appuntamento == a
    assert matrice["2025-01-06_10:30"].appuntamento == b
    assert matrice["2025-01-06_11:00"].continuazione


def test_appuntamento_annidato_ha_la_sua_ancora(orario_lunedi) -> None:
    lungo = Appuntamento(1, LUN, "10:00", 60)
    breve = Appuntamento(2, LUN, "10:00", 30)
    scartati: list = []
    matrice = _matrice(orario_lunedi, appuntamenti=[lungo, breve], scartati=scartati)

    ancore = {c.appuntamento.id for c in matrice.values() if c.ancora}
    assert ancore == {1, 2}
    assert matrice["2025-01-06_10:00"].appuntamento == breve
    assert matrice["2025-01-06_10:30"].appuntamento == lungo
    assert scartati == []


def test_appuntamento_senza_cella_propria_segnalato(orario_lunedi) -> None:
    primo = Appuntamento(1, LUN, "10:00", 30)
    doppione = Appuntamento(2, LUN, "10:00", 30)
    scartati: list = []
    matrice = _matrice(orario_lunedi, appuntamenti=[primo, doppione], scartati=scartati)

    assert matrice["2025-01-06_10:00"].appuntamento == primo
    assert scartati == [doppione]


def test_appuntamento_fuori_griglia_non_segnalato(orario_lunedi) -> None:
    scartati: list = []
    _matrice(orario_lunedi, appuntamenti=[Appuntamento(1, LUN, "06:00", 60)], scartati=scartati)
    assert scartati == []


def test_record_non_validi_scartati_senza_interrompere(orario_lunedi) -> None:
    scartati: list = []
    appuntamenti = [
        Appuntamento(1, LUN, "10:00", 0),
        Appuntamento(2, LUN, "dieci", 30),
        Appuntamento(3, LUN, "11:00", -30),
        Appuntamento(4, LUN, "12:00", 30),
    ]
    eccezioni = [
        {"id": 9, "fecha": "2025-01-06", "hora_inicio": "xx", "hora_fin": "11:00", "tipo": "bloqueo"},
        {"id": 10, "fecha": "2025-01-06", "hora_inicio": "15:00", "hora_fin": "16:00", "tipo": "bloqueo"},
    ]
    matrice = _matrice(orario_lunedi, eccezioni=eccezioni, appuntamenti=appuntamenti, scartati=scartati)

    assert len(matrice) == len(ETICHETTE)
    assert [s.id for s in scartati[:3]] == [1, 2, 3]
    assert scartati[3]["id"] == 9
    assert matrice["2025-01-06_10:00"].stato is StatoCella.DISPONIBILE
    assert matrice["2025-01-06_12:00"].stato is StatoCella.OCCUPATO
    assert matrice["2025-01-06_15:00"].stato is StatoCella.BLOCCATO


def test_domenica_senza_orario_tutta_fuori_orario(orario_lunedi) -> None:
    matrice = _matrice(orario_lunedi, inizio=DOM, fine=DOM)
    assert matrice
    assert all(c.stato is StatoCella.FUORI_ORARIO for c in matrice.values())


def test_apertura_straordinaria_di_domenica(orario_lunedi) -> None:
    apertura = _blocco("10:00", "12:00", giorno=DOM, tipo=TipoEccezione.APERTURA)
    matrice = _matrice(orario_lunedi, eccezioni=[apertura], inizio=DOM, fine=DOM)

    assert matrice["2025-01-12_10:00"].stato is StatoCella.DISPONIBILE
    assert matrice["2025-01-12_11:30"].stato is StatoCella.DISPONIBILE
    assert matrice["2025-01-12_11:30"].eccezione == apertura
    assert matrice["2025-01-12_12:00"].stato is StatoCella.FUORI_ORARIO


def test_blocchi_sovrapposti_tollerati(orario_lunedi) -> None:
    eccezioni = [
        _blocco("10:00", "11:00"),
        _blocco("10:30", "12:00"),
        Eccezione(LUN, Fascia.crea("10:30", "13:00"), TipoEccezione.APERTURA, id="apertura"),
    ]
    matrice = _matrice(orario_lunedi, eccezioni=eccezioni)

    for ora in ("10:00", "10:30", "11:00", "11:30"):
        assert matrice[f"2025-01-06_{ora}"].stato is StatoCella.BLOCCATO
    assert matrice["2025-01-06_12:00"].eccezione.id == "apertura"


def test_eccezioni_di_altre_date_non_influiscono(orario_lunedi) -> None:
    matrice = _matrice(orario_lunedi, eccezioni=[_blocco("10:00", "11:00", giorno=date(2025, 1, 13))])
    assert matrice["2025-01-06_10:00"].stato is StatoCella.DISPONIBILE


def test_etichette_con_secondi_normalizzate(orario_lunedi) -> None:
    matrice = costruisci_matrice(LUN, LUN, ["09:00:00", "9:30"], orario_lunedi, [], [])
    assert set(matrice) == {"2025-01-06_09:00", "2025-01-06_09:30"}


def test_riepilogo_e_orari_liberi(orario_lunedi) -> None:
    matrice = _matrice(
        orario_lunedi,
        eccezioni=[_blocco("09:00", "16:00")],
        appuntamenti=[Appuntamento(1, LUN, "16:00", 30)],
        inizio=LUN,
        fine=DOM,
    )

    riepilogo = riepilogo_giorni(matrice)
    assert riepilogo[LUN] is True
    assert riepilogo[DOM] is False
    assert len(riepilogo) == 7
    assert orari_liberi(matrice, LUN) == ["16:30"]
    assert leggi_cella(matrice, "2025-01-06", "16:00:00").stato is StatoCella.OCCUPATO


def test_costruzione_pura(orario_lunedi) -> None:
    eccezioni = [_blocco("10:00", "11:00")]
    appuntamenti = [Appuntamento(1, LUN, "12:00", 60)]
    assert _matrice(orario_lunedi, eccezioni, appuntamenti) == _matrice(orario_lunedi, eccezioni, appuntamenti)


def test_cella_to_json() -> None:
    orario = OrarioSettimanale()
    matrice = costruisci_matrice(LUN, LUN, ["10:00", "10:30"], orario, [], [Appuntamento(1, LUN, "10:00", 60, "Ana")])
    assert matrice["2025-01-06_10:00"].to_json() == {
        "fecha": "2025-01-06",
        "hora": "10:00",
        "estado": "ocupado",
        "cita": {
            "id": 1,
            "fecha": "2025-01-06",
            "hora": "10:00",
            "duracion": 60,
            "nombre_paciente": "Ana",
            "estado": "",
        },
        "bloqueo": None,
        "modalidad": None,
        "es_primer_bloque": True,
        "es_continuacion": False,
        "bloques_ocupados": 2,
    }
    assert matrice["2025-01-06_10:30"].to_json()["es_continuacion"] is True
