"""
Utilidades de formateo para mensajes y PDF.
Montos en dólares ($1,234.56) y fechas DD/MM/YYYY.
"""
from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Union


def money(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Formatea un monto con signo de dólar, separador de miles y 2 decimales.

    Args:
        value: Monto a formatear

    Returns:
        String formateado. Devuelve "-" si es inválido.

    Examples:
        money(1500) -> "$1,500.00"
        money(Decimal('-10.5')) -> "-$10.50"
        money(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        num = Decimal(str(value)).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    sign = "-" if num < 0 else ""
    return f"{sign}${abs(num):,.2f}"


def date_sv(value: Union[date, datetime, None]) -> str:
    """
    Formatea una fecha: DD/MM/YYYY

    Examples:
        date_sv(date(2026, 1, 12)) -> "12/01/2026"
    """
    if value is None:
        return "-"

    if isinstance(value, datetime):
        value = value.date()

    if not isinstance(value, date):
        return "-"

    return value.strftime("%d/%m/%Y")


def datetime_sv(value: Union[datetime, None], with_time: bool = True) -> str:
    """
    Formatea un datetime: DD/MM/YYYY HH:MM

    Examples:
        datetime_sv(datetime(2026, 1, 12, 15, 30)) -> "12/01/2026 15:30"
    """
    if value is None:
        return "-"

    if not isinstance(value, datetime):
        return "-"

    if with_time:
        return value.strftime("%d/%m/%Y %H:%M")
    return value.strftime("%d/%m/%Y")


def quantity(value: Union[int, float, Decimal, None]) -> str:
    """Cantidades sin ceros decimales innecesarios: 2 -> "2", 1.500 -> "1.5"."""
    if value is None:
        return "-"
    num = Decimal(str(value))
    if num == num.to_integral_value():
        return str(int(num))
    return f"{num.normalize()}"
