"""
Helper utilities
"""
from typing import List, Sequence
import math


CURRENCY_SYMBOLS = {"USD": "$", "AUD": "$", "CAD": "$", "NZD": "$", "EUR": "€", "GBP": "£"}


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safely divide two numbers"""
    try:
        return numerator / denominator if denominator != 0 else default
    except (TypeError, ZeroDivisionError):
        return default


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp value into [low, high]"""
    return max(low, min(high, value))


def chunk_list(lst: Sequence, chunk_size: int) -> List[Sequence]:
    """Split list into chunks"""
    return [lst[i:i + chunk_size] for i in range(0, len(lst), chunk_size)]


def currency_symbol(currency: str) -> str:
    """Symbol for a currency code, falling back to the code itself"""
    return CURRENCY_SYMBOLS.get((currency or "USD").upper(), f"{currency} ")


def format_currency(amount: float, currency: str = "USD") -> str:
    """Format amount as currency"""
    return f"{currency_symbol(currency)}{amount:,.2f}"


def format_money_label(amount: float, currency: str = "USD") -> str:
    """Compact currency for range labels: whole amounts drop the cents"""
    symbol = currency_symbol(currency)
    if float(amount).is_integer():
        return f"{symbol}{int(amount):,}"
    return f"{symbol}{amount:,.2f}"


def round_up_to_step(value: float, step: float = 5.0) -> float:
    """Smallest multiple of step strictly greater than value"""
    return (math.floor(value / step) + 1) * step
