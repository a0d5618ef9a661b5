"""Mapping of the researchers' lab proposal form to the records under ``laboratori``."""

from __future__ import annotations

from typing import Any, Dict, List

from .models import MISSING, SourceRow

NEW_LAB_STATE = "nuovo"

COL_TITLE = "Titolo della proposta"

# payload key -> form header, copied verbatim when present
_PLAIN_FIELDS = {
    "timestamp": "Informazioni cronologiche",
    "email": "Indirizzo email",
    "privacy": (
        "Ho preso visione dell'informativa sul trattamento dei dati personali e della "
        "nostra privacy policy"
    ),
    "nome": "Nome",
    "cognome": "Cognome",
    "dipartimento": "Dipartimento/Struttura di afferenza",
    "telefono": "Contatto telefonico",
    "telefono_interno": "Numero di telefono interno",
    "collaboratori": "Nome, cognome ed email istituzionale di eventuali collaboratori",
    "titolo": COL_TITLE,
    "descrizione": "Descrizione",
    "obiettivi_metodi": "Obiettivi e Metodi",
    "area_tematica": "Area tematica prevalente",
    "tipologia_attivita": "Tipologia attività",
    "destinatari": "Destinatari",
    "sede": "Sede di svolgimento dell’attività",
    "indirizzo_unito": "Indirizzi sedi Unito",
    "repliche": "Quante repliche del tuo laboratorio puoi tenere in questa edizione di UGAU?",
    "n_incontri": "Numero incontri previsti dal laboratorio per singolo gruppo di partecipanti:",
    "durata_incontro": "Durata approssimativa del singolo incontro:",
    "disabilita_possibile": (
        "Possibilità di accogliere alunne/i con disabilità, in base alle caratteristiche "
        "dell'attività (non della location in cui si svolgerà)"
    ),
}

# multi-choice answers, stored as lists
_LIST_FIELDS = {
    "primaria": "Classi di scuola Primaria",
    "secondaria_1": "Classi di scuola Secondaria di I grado",
    "sessione_autunnale": "Sessione autunnale",
    "sessione_primaverile": "Sessione primaverile",
    "tipologie_disabilita": "Selezionare le tipologie ammesse",
}


def _answer(row: SourceRow, column: str) -> Any:
    value = row.get(column)
    if value is MISSING or value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
    return value if value != "" else None


def _split_list(value: Any) -> List[str]:
    return [item.strip() for item in str(value).split(",") if item.strip()]


def build_lab_payload(row: SourceRow) -> Dict[str, Any]:
    """Lab record for one proposal row; unanswered questions are left out.

    Every record starts in the ``nuovo`` state, so a row without answers still
    yields ``{"stato": "nuovo"}``.
    """

    payload: Dict[str, Any] = {}
    for key, column in _PLAIN_FIELDS.items():
        payload[key] = _answer(row, column)
    for key, column in _LIST_FIELDS.items():
        answer = _answer(row, column)
        if answer is not None:
            payload[key] = _split_list(answer)
    payload["stato"] = NEW_LAB_STATE
    return {key: value for key, value in payload.items() if value is not None}


def has_answers(payload: Dict[str, Any]) -> bool:
    return len(payload) > 1
