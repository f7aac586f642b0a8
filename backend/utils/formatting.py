"""
Display formatting for BOQ pages and exports.

INR amounts use the Indian numbering system: the rightmost three digits form
one group and the rest are grouped in pairs, e.g. ₹1,23,45,678.90.
"""
from datetime import date, datetime

EMPTY_DATE = "—"


def _apply_indian_grouping(digits: str) -> str:
    if len(digits) <= 3:
        return digits

    result = digits[-3:]
    remaining = digits[:-3]
    while len(remaining) > 2:
        result = remaining[-2:] + "," + result
        remaining = remaining[:-2]
    if remaining:
        result = remaining + "," + result
    return result


def format_inr(amount, symbol: str = "₹") -> str:
    """Format an amount as rupees with Indian digit grouping and two decimals"""
    amount = float(amount or 0.0)
    negative = amount < 0
    raw = f"{abs(amount):.2f}"
    int_part, dec_part = raw.split(".")

    result = f"{symbol}{_apply_indian_grouping(int_part)}.{dec_part}"
    # -0.00 is shown as ₹0.00
    if negative and raw != "0.00":
        result = "-" + result
    return result


def format_qty(value) -> str:
    """Whole numbers without decimals, everything else with two"""
    value = float(value or 0.0)
    if value == int(value):
        return f"{value:.0f}"
    return f"{value:.2f}"


def format_percent(value) -> str:
    return f"{float(value or 0.0):.1f}%"


def format_gst(value) -> str:
    return f"{float(value or 0.0):.0f}%"


def format_date(value) -> str:
    if not value:
        return EMPTY_DATE
    if isinstance(value, (datetime, date)):
        return value.strftime("%d %b %Y")
    return str(value)


def sanitize_filename(name: str) -> str:
    """Replace characters that are unsafe in download filenames"""
    name = name or ""
    for char in (" ", "/", "\\", ":"):
        name = name.replace(char, "-")
    return name
