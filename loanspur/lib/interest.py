"""Interest calculation helpers.

Rates passed to these functions are annual percentages (12 for 12%) unless
stated otherwise.
"""

import calendar


def normalize_interest_rate(rate):
    """Return an interest rate in percentage form.

    Loans store rates as decimals (0.12) but older rows hold percentages (12)
    and a few hold basis-point style values (1200). Only the representation
    changes; the rate itself is preserved.
    """
    rate = float(rate or 0)
    if rate <= 1:
        return rate * 100
    if rate > 100:
        return rate / 100
    return rate


def get_days_in_month(day):
    return calendar.monthrange(day.year, day.month)[1]


def calculate_daily_interest(principal, annual_rate, days_in_month=30):
    """(principal x annual rate) / (12 x days in month)."""
    return (principal * (annual_rate / 100)) / (12 * days_in_month)


def calculate_monthly_interest(principal, annual_rate, days_in_month=30):
    return calculate_daily_interest(principal, annual_rate, days_in_month) * days_in_month


def calculate_daily_interest_for_date(principal, annual_rate, day):
    return calculate_daily_interest(principal, annual_rate, get_days_in_month(day))


def calculate_flat_rate_interest(params):
    principal = float(params["principal"])
    annual_rate = float(params["annual_rate"])
    term = int(params["term_in_months"])
    days_in_month = 30

    daily = calculate_daily_interest(principal, annual_rate, days_in_month)
    monthly = daily * days_in_month
    return {
        "daily_interest": daily,
        "monthly_interest": monthly,
        "total_interest": monthly * term,
        "monthly_payment": principal / term + monthly,
    }


def calculate_reducing_balance_interest(params):
    principal = float(params["principal"])
    annual_rate = float(params["annual_rate"])
    term = int(params["term_in_months"])
    monthly_rate = annual_rate / 100 / 12

    if monthly_rate == 0:
        payment = principal / term
    else:
        growth = (1 + monthly_rate) ** term
        payment = principal * (monthly_rate * growth) / (growth - 1)

    total_interest = payment * term - principal
    monthly = total_interest / term
    return {
        "daily_interest": monthly / 30,
        "monthly_interest": monthly,
        "total_interest": total_interest,
        "monthly_payment": payment,
    }


def calculate_interest(params):
    method = params.get("calculation_method")
    if method == "flat_rate":
        return calculate_flat_rate_interest(params)
    if method in ("reducing_balance", "declining_balance"):
        return calculate_reducing_balance_interest(params)
    raise ValueError(f"Unsupported calculation method: {method}")
