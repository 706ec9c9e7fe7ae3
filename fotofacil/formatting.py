"""Display formatting for prices (BRL)."""


def format_price(cents: int) -> str:
    """
    Formats centavos as Brazilian reais, e.g. 123456 -> 'R$ 1.234,56'.

    Negative amounts keep the sign in front of the currency symbol.
    """
    sign = "-" if cents < 0 else ""
    reais, centavos = divmod(abs(int(cents)), 100)
    grouped = f"{reais:,}".replace(",", ".")
    return f"{sign}R$ {grouped},{centavos:02d}"
