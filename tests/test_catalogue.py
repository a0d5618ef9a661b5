from __future__ import annotations

from lab_sync.catalogue import build_lab_payload, has_answers
from lab_sync.models import SourceRow


def proposal_row(**values) -> SourceRow:
    return SourceRow(row_number=2, values=values)


def test_lab_payload_maps_answers_and_splits_lists() -> None:
    row = proposal_row(
        **{
            "Titolo della proposta": " Robotica per tutti ",
            "Descrizione": "Costruiamo un robot",
            "Area tematica prevalente": "Ingegneria",
            "Classi di scuola Primaria": "III, IV,V",
            "Sessione autunnale": "Ottobre, Novembre",
            "Selezionare le tipologie ammesse": "motoria",
            "Nome": "",
        }
    )

    payload = build_lab_payload(row)

    assert payload == {
        "titolo": "Robotica per tutti",
        "descrizione": "Costruiamo un robot",
        "area_tematica": "Ingegneria",
        "primaria": ["III", "IV", "V"],
        "sessione_autunnale": ["Ottobre", "Novembre"],
        "tipologie_disabilita": ["motoria"],
        "stato": "nuovo",
    }


def test_row_without_answers_only_carries_the_state() -> None:
    payload = build_lab_payload(proposal_row(**{"Titolo della proposta": "  "}))

    assert payload == {"stato": "nuovo"}
    assert not has_answers(payload)
