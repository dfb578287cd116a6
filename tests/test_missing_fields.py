from __future__ import annotations


def _review(**kwargs):
    from trip_importer.modules.extraction.review import ReviewState

    return ReviewState.model_validate(kwargs)


def test_compute_missing_is_empty_outside_scope():
    from trip_importer.modules.extraction.missing import compute_missing
    from trip_importer.modules.extraction.schemas import ImportScope, ImportType

    review = _review(type="voo")
    assert compute_missing(ImportType.FLIGHT, review, ImportScope.OUTSIDE_SCOPE) == []
    assert compute_missing(None, review, ImportScope.TRIP_RELATED) == []
    assert compute_missing(ImportType.FLIGHT, None, ImportScope.TRIP_RELATED) == []


def test_compute_missing_flight_identifier():
    from trip_importer.modules.extraction.missing import compute_missing
    from trip_importer.modules.extraction.schemas import ImportScope, ImportType

    empty = _review(type="voo")
    assert compute_missing(ImportType.FLIGHT, empty, ImportScope.TRIP_RELATED) == [
        "voo.origem",
        "voo.destino",
        "voo.data_inicio",
        "voo.identificador",
    ]

    with_number = _review(
        type="voo",
        voo={"numero": "LA3301", "origem": "FLN", "destino": "GRU", "data_inicio": "2026-04-02"},
    )
    assert compute_missing(ImportType.FLIGHT, with_number, ImportScope.TRIP_RELATED) == []


def test_compute_missing_lodging_accepts_raw_name():
    from trip_importer.modules.extraction.missing import compute_missing
    from trip_importer.modules.extraction.schemas import ImportScope, ImportType

    review = _review(type="hospedagem", hospedagem={"nome": "Pousada", "check_in": "2026-05-10"})
    assert compute_missing(ImportType.LODGING, review, ImportScope.TRIP_RELATED) == [
        "hospedagem.data_fim",
        "hospedagem.valor_total",
    ]


def test_compute_missing_transport_and_restaurant():
    from trip_importer.modules.extraction.missing import compute_missing
    from trip_importer.modules.extraction.schemas import ImportScope, ImportType

    review = _review(type="transporte", transporte={"origem": "Lisboa", "destino": "  "})
    assert compute_missing(ImportType.TRANSPORT, review, ImportScope.TRIP_RELATED) == [
        "transporte.destino",
        "transporte.data_inicio",
    ]

    review = _review(type="restaurante", restaurante={"nome": "Tasca"})
    assert compute_missing(ImportType.RESTAURANT, review, ImportScope.TRIP_RELATED) == [
        "restaurante.cidade"
    ]


def test_merge_missing_keeps_foreign_entries_and_drops_marker():
    from trip_importer.modules.extraction.missing import merge_missing

    existing = ["review_manual_requerida", "voo.origem", "anexo.pendente", "anexo.pendente"]
    assert merge_missing(existing, ["hospedagem.data_fim", "hospedagem.data_fim"]) == [
        "anexo.pendente",
        "hospedagem.data_fim",
    ]
    assert merge_missing(None, None) == []


def test_missing_field_label_falls_back_to_key():
    from trip_importer.modules.extraction.missing import missing_field_label

    assert missing_field_label("hospedagem.data_inicio") == "Check-in"
    assert missing_field_label("anexo.pendente") == "anexo.pendente"
