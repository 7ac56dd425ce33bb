"""Networks and swap directions.

Two networks take part in a swap:
- ADA on Cardano (PreProd testnet by default)
- ETH on Ethereum (Sepolia testnet by default)
"""

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from enum import Enum
from typing import Union


class Network(str, Enum):
    """Ledger a custody address lives on."""

    ADA = "ADA"
    ETH = "ETH"


class Direction(str, Enum):
    """Which asset the user deposits and which one they receive."""

    ADA_TO_ETH = "ADA_TO_ETH"
    ETH_TO_ADA = "ETH_TO_ADA"

    @property
    def source(self) -> Network:
        """Network the user deposits on."""
        return Network.ADA if self is Direction.ADA_TO_ETH else Network.ETH

    @property
    def destination(self) -> Network:
        """Network the settlement is sent on."""
        return Network.ETH if self is Direction.ADA_TO_ETH else Network.ADA


@dataclass(frozen=True)
class ChainConfig:
    """Static properties of a network."""

    name: str
    symbol: str
    decimals: int
    min_output: Decimal = Decimal("0")

    @property
    def quantum(self) -> Decimal:
        """Smallest representable unit as a Decimal (1 lovelace, 1 wei)."""
        return Decimal(1).scaleb(-self.decimals)

    def quantize(self, amount: Decimal) -> Decimal:
        """Round an amount down to the network's precision."""
        return amount.quantize(self.quantum, rounding=ROUND_DOWN)

    def to_base_units(self, amount: Decimal) -> int:
        """Convert a whole-coin amount to lovelace / wei."""
        return int(self.quantize(amount).scaleb(self.decimals))

    def from_base_units(self, value: Union[int, str]) -> Decimal:
        """Convert lovelace / wei to a whole-coin amount."""
        return Decimal(value).scaleb(-self.decimals)


CHAINS: dict[Network, ChainConfig] = {
    Network.ADA: ChainConfig(
        name="Cardano",
        symbol="ADA",
        decimals=6,
        min_output=Decimal("1"),  # ledger minimum UTxO for a plain ADA output
    ),
    Network.ETH: ChainConfig(
        name="Ethereum",
        symbol="ETH",
        decimals=18,
    ),
}


def get_chain(network: Network) -> ChainConfig:
    """Get static configuration for a network."""
    return CHAINS[network]
