from decimal import Decimal

from pharmapos.config import settings


def money(v) -> str:
    return f"{Decimal(str(v)):,.{settings.decimals}f} {settings.currency}"
