from __future__ import annotations


def test_to_review_state_prefers_canonical_type_and_dates():
    from trip_importer.modules.extraction.review import to_review_state
    from trip_importer.modules.extraction.schemas import ImportType, WeakDraft

    draft = WeakDraft.model_validate(
        {
            "type": "transporte",
            "data": {"hospedagem": {"nome": "Hotel Sol", "check_in": "01/05/2026", "valor": 900.0}},
            "canonical": {
                "metadata": {"tipo": "Hospedagem", "confianca": 80},
                "dados_principais": {
                    "nome_exibicao": "Hotel Sol Lisboa",
                    "data_inicio": "2026-05-02",
                    "hora_inicio": "14h00",
                    "destino": "Lisboa",
                },
                "financeiro": {"valor_total": 950.0, "moeda": "EUR"},
            },
        }
    )

    review = to_review_state(draft, ImportType.TRANSPORT)

    assert review.type == ImportType.LODGING
    assert review.hospedagem.nome == "Hotel Sol"
    assert review.hospedagem.check_in == "2026-05-02"
    assert review.hospedagem.hora_inicio == "14:00"
    assert review.hospedagem.valor == "900"
    assert review.hospedagem.moeda == "EUR"
    assert review.hospedagem.localizacao == "Lisboa"
    assert review.voo.status == "pendente"


def test_to_review_state_without_canonical_uses_bags():
    from trip_importer.modules.extraction.review import to_review_state
    from trip_importer.modules.extraction.schemas import ImportType, WeakDraft

    draft = WeakDraft.model_validate(
        {"data": {"voo": {"origem": "FLN", "destino": "GRU", "data": "02/04/2026", "valor": 10.5}}}
    )
    review = to_review_state(draft, ImportType.FLIGHT)

    assert review.type == ImportType.FLIGHT
    assert review.voo.data_inicio == "2026-04-02"
    assert review.voo.valor == "10.5"
    assert review.voo.moeda == "BRL"
    assert review.section().origem == "FLN"
