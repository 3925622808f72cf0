from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


def money(value):
    """
    Round an amount to cents for reporting (half up, like a bank statement).

    Stored amounts keep full float precision; only figures handed out in
    summaries go through here. None counts as zero.
    """
    if value is None:
        return 0.0
    return float(Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP))
