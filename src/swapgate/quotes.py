"""Price quotes for swap orders.

The output amount of an order is quoted once, at creation, and never
recalculated.
"""

import logging
from abc import ABC, abstractmethod
from decimal import Decimal

from swapgate.chains import Direction, get_chain

logger = logging.getLogger(__name__)


class QuoteError(ValueError):
    """Raised when an amount cannot be quoted."""

    pass


class QuoteSource(ABC):
    """Abstract source of swap quotes."""

    @abstractmethod
    def quote(self, direction: Direction, amount: Decimal) -> Decimal:
        """Return the amount of the destination asset paid for ``amount``.

        Args:
            direction: Swap direction
            amount: Amount of the source asset the user deposits

        Returns:
            Output amount, rounded down to the destination network precision
        """
        pass


class FixedRateQuoteSource(QuoteSource):
    """Quotes from a fixed ADA/ETH exchange rate.

    ``rate`` is the amount of ETH paid for 1 ADA (0.0005 by default).
    """

    def __init__(self, rate: Decimal):
        if rate <= 0:
            raise QuoteError(f"Exchange rate must be positive, got {rate}")
        self.rate = Decimal(rate)

    def quote(self, direction: Direction, amount: Decimal) -> Decimal:
        if amount <= 0:
            raise QuoteError(f"Amount must be positive, got {amount}")

        direction = Direction(direction)
        if direction is Direction.ADA_TO_ETH:
            raw = amount * self.rate
        else:
            raw = amount / self.rate

        chain = get_chain(direction.destination)
        output = chain.quantize(raw)
        if output <= 0 or output < chain.min_output:
            raise QuoteError(
                f"Amount {amount} is too small to swap: output {output} {chain.symbol} "
                f"is below the minimum of {chain.min_output}"
            )
        return output
