import re

from errors import ParseError

DEFAULT_DECIMALS = 18

# Solo decimales planos y no negativos: "10", "1.5", ".5", "2." (sin signo, sin exponente)
_AMOUNT_RE = re.compile(r"^([0-9]*)(?:\.([0-9]*))?$")


def parse_units(text, decimals=DEFAULT_DECIMALS):
    """
    Convierte un string decimal humano ("1.5") a la unidad mínima del activo
    (1500000000000000000 con 18 decimales). Aritmética entera exacta, sin floats.
    Más decimales de los que admite el activo es un error, nunca se trunca.
    """
    if not isinstance(text, str):
        raise ParseError(f"amount must be a decimal string, got {type(text).__name__}")

    cleaned = text.strip()
    match = _AMOUNT_RE.match(cleaned)
    if not cleaned or not match or cleaned == ".":
        raise ParseError(f"invalid decimal amount: {text!r}")

    whole, fraction = match.group(1), match.group(2) or ""
    if len(fraction) > decimals:
        raise ParseError(
            f"amount {text!r} has {len(fraction)} decimal places, at most {decimals} allowed"
        )

    return int(whole or "0") * 10 ** decimals + int(fraction.ljust(decimals, "0") or "0")


def format_units(value, decimals=DEFAULT_DECIMALS):
    """Inverse of parse_units: 1500000000000000000 -> "1.5", 10 * 10**18 -> "10"."""
    if value < 0:
        raise ValueError(f"amounts are non-negative, got {value}")

    whole, fraction = divmod(int(value), 10 ** decimals)
    fraction_text = str(fraction).rjust(decimals, "0").rstrip("0")
    if not fraction_text:
        return str(whole)
    return f"{whole}.{fraction_text}"
