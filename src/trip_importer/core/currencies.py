from __future__ import annotations

SUPPORTED_CURRENCIES: frozenset[str] = frozenset({"BRL", "USD", "EUR", "CHF", "GBP"})

_SYMBOLS: dict[str, str] = {
    "R$": "BRL",
    "US$": "USD",
    "€": "EUR",
    "£": "GBP",
}

# Fixed conversion table used for the post-confirmation summary only.
BRL_RATES: dict[str, float] = {
    "BRL": 1.0,
    "EUR": 5.8,
    "USD": 5.2,
    "CHF": 5.98,
    "GBP": 6.5,
}


def normalize_currency(value: str | None) -> str | None:
    if value is None:
        return None
    raw = str(value).strip()
    if not raw:
        return None
    if raw.upper() in _SYMBOLS:
        return _SYMBOLS[raw.upper()]
    if raw in _SYMBOLS:
        return _SYMBOLS[raw]
    code = raw.upper()
    if code in SUPPORTED_CURRENCIES:
        return code
    return None


def convert_to_brl(value: float, currency: str | None) -> float:
    rate = BRL_RATES.get((currency or "BRL").upper(), 1.0)
    return value * rate
