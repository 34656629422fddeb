import logging
import math

import inflect

logger = logging.getLogger(__name__)

p = inflect.engine()

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "KES": "KSh",
    "UGX": "USh",
    "TZS": "TSh",
    "NGN": "₦",
    "GHS": "₵",
    "ZAR": "R",
    "INR": "₹",
    "AUD": "A$",
    "CAD": "C$",
}

CURRENCY_NAMES = {
    "KES": "Shillings",
    "UGX": "Shillings",
    "TZS": "Shillings",
    "USD": "Dollars",
    "AUD": "Dollars",
    "CAD": "Dollars",
    "EUR": "Euros",
    "GBP": "Pounds",
    "NGN": "Naira",
    "GHS": "Cedis",
    "ZAR": "Rand",
    "INR": "Rupees",
}


def get_currency_symbol(currency):
    return CURRENCY_SYMBOLS.get(currency, currency)


def format_number(amount, decimal_places=None):
    """Thousands-separated number; decimals only where the value has them."""
    amount = float(amount or 0)
    if decimal_places is None:
        if amount == int(amount):
            return f"{int(amount):,}"
        return f"{amount:,.2f}".rstrip("0").rstrip(".")
    return f"{amount:,.{decimal_places}f}"


def format_amount(amount, currency="USD", decimal_places=2):
    if amount is None:
        amount = 0
    try:
        amount = float(amount)
    except (TypeError, ValueError):
        amount = 0.0
    if math.isnan(amount):
        amount = 0.0
    dps = decimal_places if isinstance(decimal_places, int) and decimal_places >= 0 else 2
    sign = "-" if amount < 0 else ""
    return f"{sign}{get_currency_symbol(currency)}{abs(amount):,.{dps}f}"


def amount_to_words(amount, currency="KES"):
    try:
        n = int(float(amount))
    except (TypeError, ValueError):
        return str(amount)
    words = p.number_to_words(n, andword="").replace(",", "")
    return f"{words.title()} {CURRENCY_NAMES.get(currency, currency)} Only"


def get_tenant_currency(client, tenant_id, default="KES"):
    """Currency code and decimal places configured for a tenant."""
    settings = {"currency": default, "decimal_places": 2, "symbol": get_currency_symbol(default)}
    if not tenant_id:
        return settings
    resp = client.table("tenants").select("currency_code,currency_decimal_places").eq("id", tenant_id).limit(1).execute()
    if resp.data:
        row = resp.data[0]
        if row.get("currency_code"):
            settings["currency"] = row["currency_code"]
        if isinstance(row.get("currency_decimal_places"), int):
            settings["decimal_places"] = row["currency_decimal_places"]
    settings["symbol"] = get_currency_symbol(settings["currency"])
    return settings
