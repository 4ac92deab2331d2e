"""
Proposal pricing calculator.

WHAT: Splits a proposal's total price into advance and balance amounts.

WHY: The split is money. It must be:
1. Exact (integer minor units, no floats)
2. Deterministic (round half up, same answer everywhere)
3. Lossless (advance + balance == total, always)

HOW: The advance is rounded once; the balance is the remainder and is
never rounded on its own.
"""

from dataclasses import dataclass
from typing import Any, Dict

from client_portal.core.exceptions import ValidationError
from client_portal.models.proposal import ALLOWED_ADVANCE_PERCENTAGES


@dataclass(frozen=True)
class PricingBreakdown:
    """Advance / balance split of a total price in minor units."""

    total_price: int
    advance_percentage: int
    advance_amount: int
    balance_amount: int

    def as_columns(self) -> Dict[str, Any]:
        """Column values to persist on a Proposal."""
        return {
            "total_price": self.total_price,
            "advance_percentage": self.advance_percentage,
            "advance_amount": self.advance_amount,
            "balance_amount": self.balance_amount,
        }


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def compute_pricing(total_price: int, advance_percentage: int) -> PricingBreakdown:
    """
    Compute the advance and balance for a proposal.

    advance = round_half_up(total * pct / 100)
    balance = total - advance

    Args:
        total_price: Total in minor currency units (paise, cents), > 0
        advance_percentage: One of 40, 50, 60

    Returns:
        PricingBreakdown

    Raises:
        ValidationError: If the total is not a positive integer or the
            percentage is not allowed

    Example:
        >>> compute_pricing(100001, 50).advance_amount
        50001
    """
    errors = []
    if not _is_int(total_price) or total_price <= 0:
        errors.append(
            {"field": "total_price", "message": "Total price must be a positive integer amount"}
        )
    if not _is_int(advance_percentage) or advance_percentage not in ALLOWED_ADVANCE_PERCENTAGES:
        errors.append(
            {
                "field": "advance_percentage",
                "message": "Advance percentage must be one of 40, 50 or 60",
            }
        )
    if errors:
        raise ValidationError(message="Invalid pricing", errors=errors)

    # floor(x + 0.5) in integer arithmetic; both operands are positive
    advance_amount = (total_price * advance_percentage + 50) // 100
    return PricingBreakdown(
        total_price=total_price,
        advance_percentage=advance_percentage,
        advance_amount=advance_amount,
        balance_amount=total_price - advance_amount,
    )


CURRENCY_SYMBOLS = {"INR": "₹", "USD": "$"}


def format_amount(amount_minor: int, currency: str) -> str:
    """
    Format minor units for display, e.g. 150000 INR -> "₹1,500.00".

    Args:
        amount_minor: Amount in paise / cents
        currency: ISO currency code

    Returns:
        Human readable amount with currency symbol
    """
    code = getattr(currency, "value", currency)
    symbol = CURRENCY_SYMBOLS.get(code, f"{code} ")
    major, minor = divmod(int(amount_minor), 100)
    return f"{symbol}{major:,}.{minor:02d}"
