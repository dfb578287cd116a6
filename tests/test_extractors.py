from __future__ import annotations

import pytest


def test_extract_route_prefers_airport_pair():
    from trip_importer.modules.extraction.extractors import extract_route

    route = extract_route("LATAM LA3301 FLN-GRU 02/04/2026")
    assert route is not None
    assert (route.origin, route.destination) == ("FLN", "GRU")
    assert route.rule == "airport_pair"


def test_extract_route_skips_currency_codes_in_free_tokens():
    from trip_importer.modules.extraction.extractors import extract_route

    route = extract_route("Total BRL 500\nSaída GIG chegada LIS")
    assert route is not None
    assert (route.origin, route.destination) == ("GIG", "LIS")
    assert route.rule == "free_airport_tokens"


def test_extract_route_reads_labeled_airports():
    from trip_importer.modules.extraction.extractors import extract_route

    route = extract_route("Origem: POA Destino: CNF")
    assert route is not None
    assert (route.origin, route.destination) == ("POA", "CNF")
    assert route.rule == "labeled_airports"


def test_extract_route_reads_city_phrase():
    from trip_importer.modules.extraction.extractors import extract_route

    route = extract_route("Viagem de Cuiabá para São Paulo em 02 abril 2026")
    assert route is not None
    assert (route.origin, route.destination) == ("Cuiabá", "São Paulo")
    assert route.rule == "city_phrase"


def test_extract_route_reads_labeled_cities():
    from trip_importer.modules.extraction.extractors import extract_route

    route = extract_route("origem: rodoviária de Curitiba; destino: Florianópolis")
    assert route is not None
    assert route.origin == "rodoviária de Curitiba"
    assert route.destination == "Florianópolis"
    assert route.rule == "labeled_cities"


def test_extract_route_returns_none_without_signals():
    from trip_importer.modules.extraction.extractors import extract_route

    assert extract_route("recibo de mercado") is None
    assert extract_route(None) is None


def test_extract_flight_number_falls_back_to_file_name():
    from trip_importer.modules.extraction.extractors import extract_flight_number

    assert extract_flight_number("Voo LA3301 confirmado") == "LA3301"
    assert extract_flight_number("sem número", "bilhete-ad4520.pdf") == "AD4520"
    assert extract_flight_number("sem número", "bilhete.pdf") is None


def test_extract_reservation_code_requires_label():
    from trip_importer.modules.extraction.extractors import extract_reservation_code

    assert extract_reservation_code("Localizador: wctjsn") == "WCTJSN"
    assert extract_reservation_code("Código de reserva ABC123") == "ABC123"
    assert extract_reservation_code("LA3301 FLN-GRU") is None


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Obrigado por voar com a LATAM", "LATAM"),
        ("Bilhete AIR   FRANCE", "Air France"),
        ("Recibo de hotel", None),
    ],
)
def test_extract_carrier(text, expected):
    from trip_importer.modules.extraction.extractors import extract_carrier

    assert extract_carrier(text) == expected


def test_extract_stay_dates_and_address():
    from trip_importer.modules.extraction.extractors import extract_address, extract_stay_dates

    text = (
        "Endereço: 12 Rue de Clichy, 75009 Paris\n"
        "Check-in: 10/05/2026\n"
        "Check-out: 15 de maio de 2026\n"
    )
    assert extract_stay_dates(text) == ("2026-05-10", "2026-05-15")
    assert extract_address(text) == "12 Rue de Clichy, 75009 Paris"


@pytest.mark.parametrize(
    ("text", "value", "currency"),
    [
        ("Total R$ 1.299,90", 1299.90, "BRL"),
        ("Total: 836,73 BRL", 836.73, "BRL"),
        ("Amount US$ 1,299.90", 1299.90, "USD"),
        ("Prix 45,00 €", 45.0, "EUR"),
        ("EUR 120", 120.0, "EUR"),
    ],
)
def test_extract_amount_with_currency_marker(text, value, currency):
    from trip_importer.modules.extraction.extractors import extract_amount

    amount = extract_amount(text)
    assert amount is not None
    assert amount.value == pytest.approx(value)
    assert amount.currency == currency


def test_extract_amount_ignores_bare_numbers():
    from trip_importer.modules.extraction.extractors import extract_amount

    assert extract_amount("Voo LA3301 assento 12") is None


@pytest.mark.parametrize(
    ("text", "value", "currency"),
    [
        ("Voo GRU-JFK 10/05/2026 USD 1.250,00", 1250.0, "USD"),
        ("LATAM LA3301 FLN-GRU data 02/04/2026 BRL 1299,90", 1299.90, "BRL"),
        ("Check-out 15/05/2026 BRL\nTotal 836,73 BRL", 836.73, "BRL"),
    ],
)
def test_extract_amount_does_not_read_date_digits_as_money(text, value, currency):
    from trip_importer.modules.extraction.extractors import extract_amount

    amount = extract_amount(text)
    assert amount is not None
    assert amount.value == pytest.approx(value)
    assert amount.currency == currency


def test_extract_amount_prefers_marker_before_number():
    from trip_importer.modules.extraction.extractors import extract_amount

    amount = extract_amount("Taxa 50 EUR, total R$ 1.299,90")
    assert amount is not None
    assert amount.value == pytest.approx(1299.90)
    assert amount.currency == "BRL"
