"""Parsing utilities for numbers and dates coming from forms and JSON payloads."""
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

# 1234.56, 1,234.56, 1234 (thousands with comma, decimals with dot)
AMOUNT_PATTERN = re.compile(r"^-?(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?$")


def parse_amount(value) -> Decimal:
    """
    Parse an amount from a JSON number or a string such as "1,234.56".

    Floats are converted through str() so 0.1 stays Decimal('0.1').

    Raises:
        ValueError: if the value is empty or not a number.
    """
    if value is None or isinstance(value, bool):
        raise ValueError('Monto requerido')

    if isinstance(value, (Decimal, int, float)):
        result = value if isinstance(value, Decimal) else Decimal(str(value))
        if not result.is_finite():
            raise ValueError(f'Formato de monto inválido: {value}')
        return result

    cleaned = str(value).strip().replace('$', '').replace(' ', '')
    if not cleaned:
        raise ValueError('Monto requerido')

    if not AMOUNT_PATTERN.match(cleaned):
        raise ValueError(f'Formato de monto inválido: {value}')

    try:
        return Decimal(cleaned.replace(',', ''))
    except (InvalidOperation, ValueError):
        raise ValueError(f'Formato de monto inválido: {value}')


def parse_date(value, default=None) -> date:
    """
    Parse YYYY-MM-DD (or an ISO datetime) into a date.

    Returns default when value is empty.

    Raises:
        ValueError: invalid format.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return default

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    try:
        return datetime.strptime(text[:10], '%Y-%m-%d').date()
    except ValueError:
        raise ValueError('Formato de fecha inválido. Use AAAA-MM-DD')


def parse_bool(value) -> bool:
    """Accept JSON booleans and the usual form strings."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on', 'si', 'sí')
