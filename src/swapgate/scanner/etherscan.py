"""Etherscan observer for ETH deposits.

Uses the Etherscan API v2 (one endpoint for every EVM chain, selected with
``chainid``). A single ``txlist`` call returns the custody address history,
which is far cheaper than scanning blocks over JSON-RPC.
API Docs: https://docs.etherscan.io/
"""

import logging
from datetime import datetime
from typing import Optional

import httpx

from swapgate.chains import Network, get_chain
from swapgate.scanner.base import ChainObserver, IncomingTransaction
from swapgate.utils.clock import from_timestamp

logger = logging.getLogger(__name__)

ETHERSCAN_V2_API = "https://api.etherscan.io/v2/api"
SEPOLIA_CHAIN_ID = 11155111


class EtherscanError(Exception):
    """Etherscan returned an error payload."""

    pass


class EtherscanObserver(ChainObserver):
    """ETH deposit observer using the Etherscan ``txlist`` endpoint.

    Free tier: 5 calls/second, 100,000 calls/day.
    """

    def __init__(
        self,
        api_key: str = "",
        chain_id: int = SEPOLIA_CHAIN_ID,
        base_url: str = ETHERSCAN_V2_API,
        min_confirmations: int = 1,
        page_size: int = 50,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Etherscan observer.

        Args:
            api_key: Etherscan API key
            chain_id: EVM chain id (Sepolia by default)
            base_url: Etherscan v2 endpoint
            min_confirmations: Confirmations required before a deposit counts
            page_size: Number of most recent transactions inspected per query
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport (tests)
        """
        super().__init__(Network.ETH)
        self.api_key = api_key
        self.chain_id = chain_id
        self.base_url = base_url
        self.min_confirmations = min_confirmations
        self.page_size = page_size
        self.timeout = timeout
        self._transport = transport

    async def fetch_incoming(
        self, address: str, not_before: datetime
    ) -> list[IncomingTransaction]:
        params = {
            "chainid": self.chain_id,
            "module": "account",
            "action": "txlist",
            "address": address,
            "startblock": 0,
            "endblock": 99999999,
            "page": 1,
            "offset": self.page_size,
            "sort": "desc",
            "apikey": self.api_key,
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(self.base_url, params=params)
            response.raise_for_status()
            data = response.json()

        if data.get("status") != "1":
            # status 0 is also how Etherscan says "no transactions"
            if isinstance(data.get("result"), list) and not data["result"]:
                return []
            raise EtherscanError(f"{data.get('message')}: {data.get('result')}")

        result = data.get("result")
        if not isinstance(result, list):
            raise EtherscanError(f"Unexpected txlist payload: {type(result).__name__}")

        transactions = []
        for tx in result:
            tx_info = self._parse_transaction(tx, address)
            if tx_info is not None:
                transactions.append(tx_info)
        return transactions

    def _parse_transaction(self, tx: dict, address: str) -> Optional[IncomingTransaction]:
        """Parse one txlist entry; None for outgoing, failed or malformed entries."""
        try:
            # Only incoming transactions
            if (tx.get("to") or "").lower() != address.lower():
                return None

            if tx.get("isError", "0") != "0":
                return None

            if int(tx.get("confirmations", 0)) < self.min_confirmations:
                return None

            # Convert from Wei (1 ETH = 10^18 Wei)
            amount = get_chain(Network.ETH).from_base_units(tx["value"])

            # Skip zero-value transactions (contract calls)
            if amount == 0:
                return None

            return IncomingTransaction(
                tx_ref=tx["hash"],
                network=Network.ETH,
                to_address=address,
                amount=amount,
                timestamp=from_timestamp(tx["timeStamp"]),
                from_address=tx.get("from"),
            )

        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            logger.debug(f"Skipping malformed Etherscan entry: {e}")
            return None
