"""
Agenda Studio: disponibilità settimanale e scelta delle sessioni.

Struttura:
- orari.py        : utility orari/date, fascia oraria
- dominio.py      : modello dati (blocchi settimanali, eccezioni, appuntamenti, celle)
- settimanale.py  : orario settimanale ricorrente
- eccezioni.py    : blocchi manuali / aperture straordinarie
- appuntamenti.py : appuntamenti prenotati (sola lettura)
- matrice.py      : matrice di disponibilità per data e orario
- sessioni.py     : scelta delle N sessioni di un pacchetto
- sorgenti.py     : backend prenotazioni (REST) e sorgente in memoria
- caricatore.py   : caricamento della settimana, cache per giorno, riconciliazione
- kv.py, db.py, models.py : archivio chiave/valore (memoria o SQLAlchemy)
- config.py, logs.py      : configurazione da ambiente e logging
- api_main.py     : API FastAPI
- cli.py          : CLI
- seed.py         : dati demo
"""
