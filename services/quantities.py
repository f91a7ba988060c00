from decimal import Decimal, InvalidOperation

QTY = Decimal("0.001")
COST = Decimal("0.0001")
MONEY = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(val) -> Decimal:
    """Convierte a Decimal aceptando coma o punto. Inválido => 0."""
    if val is None:
        return ZERO
    if isinstance(val, Decimal):
        return val if val.is_finite() else ZERO
    s = str(val).strip().replace(",", ".")
    try:
        d = Decimal(s)
    except (InvalidOperation, ValueError):
        return ZERO
    return d if d.is_finite() else ZERO


def to_qty(val) -> Decimal:
    """
    Soporta cantidades con coma/punto. Devuelve Decimal(14,3) >= 0.
    """
    d = to_decimal(val)
    if d < 0:
        return ZERO.quantize(QTY)
    return d.quantize(QTY)


def to_signed_qty(val) -> Decimal:
    return to_decimal(val).quantize(QTY)


def to_cost(val) -> Decimal:
    return to_decimal(val).quantize(COST)


def to_money(val) -> Decimal:
    return to_decimal(val).quantize(MONEY)
