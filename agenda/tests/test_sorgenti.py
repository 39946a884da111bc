from __future__ import annotations

import json
from datetime import date
from unittest.mock import Mock

import pytest
import requests

from agenda.dominio import Eccezione, TipoEccezione
from agenda.errori import ConflittoSovrapposizione, EccezioneDuplicata, NonTrovato
from agenda.orari import Fascia
from agenda.sorgenti import SorgenteMemoria, SorgenteRest

BASE = "http://agenda.test"


def _risposta(status: int, corpo=None, url: str = BASE) -> requests.Response:
    r = requests.Response()
    r.status_code = status
    r._content = b"" if corpo is None else json.dumps(corpo).encode()
    r.url = url
    return r


def _sorgente(token: str | None = "tok") -> tuple[SorgenteRest, Mock]:
    http = Mock(spec=requests.Session)
    return SorgenteRest(BASE + "/", token=token, timeout=3, sessione=http), http


def test_scarica_eccezioni_passa_intervallo_e_token() -> None:
    sorgente, http = _sorgente()
    http.get.return_value = _risposta(
        200,
        [
            {"id": 1, "fecha": "2025-01-07", "hora_inicio": "10:00:00", "hora_fin": "11:00:00", "tipo": "bloqueo"},
            {"id": 2, "fecha": "2025-01-08", "hora_inicio": "rotto", "hora_fin": "11:00", "tipo": "bloqueo"},
            {"id": 3, "fecha": "2025-01-09", "hora_inicio": "14:00", "hora_fin": "15:00", "tipo": "disponible"},
        ],
    )

    eccezioni = sorgente.scarica_eccezioni(date(2025, 1, 6), "2025-01-12")

    assert [e.id for e in eccezioni] == [1, 3]
    assert eccezioni[1].tipo is TipoEccezione.APERTURA

    args, kwargs = http.get.call_args
    assert args[0] == "http://agenda.test/api/bloques-manuales"
    assert kwargs["params"]["fecha_inicio"] == "2025-01-06"
    assert kwargs["params"]["fecha_fin"] == "2025-01-12"
    assert kwargs["params"]["t"].isdigit()
    assert kwargs["headers"]["Authorization"] == "Bearer tok"
    assert kwargs["headers"]["Cache-Control"] == "no-cache"
    assert kwargs["timeout"] == 3


def test_senza_token_nessun_header_authorization() -> None:
    sorgente, http = _sorgente(token=None)
    http.get.return_value = _risposta(200, [])
    sorgente.scarica_appuntamenti("2025-01-06", "2025-01-12")
    assert "Authorization" not in http.get.call_args.kwargs["headers"]


def test_scarica_appuntamenti() -> None:
    sorgente, http = _sorgente()
    http.get.return_value = _risposta(
        200,
        [
            {"id": 10, "fecha": "2025-01-06", "hora": "09:00:00", "duracion": 60, "nombre_paciente": "Ana"},
            {"fecha": "2025-01-06", "hora": "10:00"},
        ],
    )
    appuntamenti = sorgente.scarica_appuntamenti("2025-01-06", "2025-01-12")
    assert [a.id for a in appuntamenti] == [10]
    assert http.get.call_args.args[0].endswith("/api/citas")


def test_scarica_orario() -> None:
    sorgente, http = _sorgente()
    http.get.return_value = _risposta(
        200, {"horarioSemanal": {"lunes": [{"hora_inicio": "09:00", "hora_fin": "13:00"}]}}
    )
    orario = sorgente.scarica_orario()
    assert orario.fasce_del_giorno(1) == [Fascia.crea("09:00", "13:00")]


@pytest.mark.parametrize(
    "codice, errore",
    [("DUPLICADO", EccezioneDuplicata), ("SOLAPAMIENTO", ConflittoSovrapposizione), (None, ConflittoSovrapposizione)],
)
def test_conflitto_409(codice, errore) -> None:
    sorgente, http = _sorgente()
    http.request.return_value = _risposta(409, {"code": codice, "error": "Ya existe un bloqueo"})

    with pytest.raises(errore, match="Ya existe"):
        sorgente.crea_eccezione(Eccezione(date(2025, 1, 6), Fascia.crea("10:00", "11:00")))


def test_409_senza_corpo_json() -> None:
    sorgente, http = _sorgente()
    http.request.return_value = _risposta(409, ["non", "un", "oggetto"])
    with pytest.raises(ConflittoSovrapposizione):
        sorgente.elimina_eccezione(1)


def test_404_e_500() -> None:
    sorgente, http = _sorgente()
    http.request.return_value = _risposta(404)
    with pytest.raises(NonTrovato):
        sorgente.elimina_eccezione(99)

    http.get.return_value = _risposta(500, {"error": "boom"})
    with pytest.raises(requests.HTTPError):
        sorgente.scarica_orario()


def test_401() -> None:
    sorgente, http = _sorgente()
    http.get.return_value = _risposta(401)
    with pytest.raises(PermissionError):
        sorgente.scarica_orario()


def test_crea_eccezione_invia_json_senza_id() -> None:
    sorgente, http = _sorgente()
    http.request.return_value = _risposta(
        201, {"id": 77, "fecha": "2025-01-06", "hora_inicio": "10:00", "hora_fin": "11:00", "tipo": "bloqueo"}
    )

    creata = sorgente.crea_eccezione(Eccezione(date(2025, 1, 6), Fascia.crea("10:00", "11:00"), id="locale"))

    assert creata.id == 77
    metodo, url = http.request.call_args.args
    assert (metodo, url) == ("POST", "http://agenda.test/api/bloques-manuales")
    assert "id" not in http.request.call_args.kwargs["json"]


def test_aggiorna_ed_elimina_usano_l_id_nel_path() -> None:
    sorgente, http = _sorgente()
    http.request.return_value = _risposta(
        200, {"id": 5, "fecha": "2025-01-06", "hora_inicio": "12:00", "hora_fin": "13:00", "tipo": "bloqueo"}
    )
    sorgente.aggiorna_eccezione(5, Eccezione(date(2025, 1, 6), Fascia.crea("12:00", "13:00")))
    assert http.request.call_args.args == ("PUT", "http://agenda.test/api/bloques-manuales/5")

    http.request.return_value = _risposta(204)
    assert sorgente.elimina_eccezione(5) is None
    assert http.request.call_args.args == ("DELETE", "http://agenda.test/api/bloques-manuales/5")


def test_salva_orario() -> None:
    sorgente, http = _sorgente()
    memoria = SorgenteMemoria()
    memoria.orario.imposta_giorno(2, [Fascia.crea("09:00", "12:00")])

    http.request.return_value = _risposta(200, {"ok": True})
    assert sorgente.salva_orario(memoria.orario) is memoria.orario
    assert http.request.call_args.kwargs["json"]["horarios"][0]["dia_semana"] == 2

    http.request.return_value = _risposta(200, {"horarioSemanal": {"viernes": [{"inicio": "10:00", "fin": "11:00"}]}})
    salvato = sorgente.salva_orario(memoria.orario)
    assert salvato.giorni_attivi() == [5]


def test_sorgente_memoria() -> None:
    sorgente = SorgenteMemoria()
    creata = sorgente.crea_eccezione(Eccezione(date(2025, 1, 6), Fascia.crea("10:00", "11:00")))
    assert creata.id is not None
    assert sorgente.scarica_eccezioni("2025-01-06", "2025-01-06") == [creata]

    with pytest.raises(EccezioneDuplicata):
        sorgente.crea_eccezione(Eccezione(date(2025, 1, 6), Fascia.crea("10:00", "11:00")))

    sorgente.elimina_eccezione(creata.id)
    assert sorgente.scarica_eccezioni("2025-01-06", "2025-01-06") == []

    # la copia restituita non tocca lo stato della sorgente
    sorgente.scarica_orario().imposta_giorno(1, [Fascia.crea("09:00", "10:00")])
    assert len(sorgente.orario) == 0
