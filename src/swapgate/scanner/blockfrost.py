"""Blockfrost observer for ADA deposits.

Cardano is UTXO based: a transaction "pays" the custody address through one or
more outputs. The observer lists recent transactions touching the address and
sums the lovelace of outputs locked to it.
API Docs: https://docs.blockfrost.io/
"""

import logging
from datetime import datetime
from typing import Optional

import httpx

from swapgate.chains import Network, get_chain
from swapgate.scanner.base import ChainObserver, IncomingTransaction
from swapgate.utils.clock import as_utc, from_timestamp

logger = logging.getLogger(__name__)

BLOCKFROST_PREPROD = "https://cardano-preprod.blockfrost.io/api/v0"
BLOCKFROST_MAINNET = "https://cardano-mainnet.blockfrost.io/api/v0"


class BlockfrostObserver(ChainObserver):
    """ADA deposit observer using Blockfrost.

    Transactions that spend from the custody address are skipped: those are
    the service's own settlements, and their change output would otherwise
    look like an incoming payment.
    """

    def __init__(
        self,
        project_id: str,
        base_url: str = BLOCKFROST_PREPROD,
        page_size: int = 10,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Blockfrost observer.

        Args:
            project_id: Blockfrost project id
            base_url: Blockfrost API base URL (PreProd by default)
            page_size: Number of most recent transactions inspected per query
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport (tests)
        """
        super().__init__(Network.ADA)
        self.project_id = project_id
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"project_id": self.project_id},
            timeout=self.timeout,
            transport=self._transport,
        )

    async def fetch_incoming(
        self, address: str, not_before: datetime
    ) -> list[IncomingTransaction]:
        not_before = as_utc(not_before)
        transactions = []

        async with self._client() as client:
            response = await client.get(
                f"/addresses/{address}/transactions",
                params={"order": "desc", "count": self.page_size},
            )
            if response.status_code == 404:
                # Address has never been used on chain
                return []
            response.raise_for_status()

            listing = response.json()
            if not isinstance(listing, list):
                raise ValueError(f"Unexpected address transactions payload: {listing!r}")

            for entry in listing:
                try:
                    tx_hash = entry["tx_hash"]
                    block_time = entry.get("block_time")
                    if block_time is None:
                        block_time = await self._get_block_time(client, tx_hash)
                    timestamp = from_timestamp(block_time)
                except (KeyError, TypeError, ValueError, httpx.HTTPError) as e:
                    logger.debug(f"Skipping Blockfrost entry {entry!r}: {e}")
                    continue

                # Listing is newest first; everything after this is older still
                if timestamp < not_before:
                    break

                try:
                    tx_info = await self._get_incoming(client, tx_hash, address, timestamp)
                except (
                    KeyError,
                    TypeError,
                    ValueError,
                    AttributeError,
                    ArithmeticError,
                    httpx.HTTPError,
                ) as e:
                    logger.debug(f"Skipping Blockfrost tx {tx_hash}: {e}")
                    continue

                if tx_info is not None:
                    transactions.append(tx_info)

        return transactions

    async def _get_block_time(self, client: httpx.AsyncClient, tx_hash: str) -> int:
        """Block time of a transaction (seconds since epoch)."""
        response = await client.get(f"/txs/{tx_hash}")
        response.raise_for_status()
        return int(response.json()["block_time"])

    async def _get_incoming(
        self,
        client: httpx.AsyncClient,
        tx_hash: str,
        address: str,
        timestamp: datetime,
    ) -> Optional[IncomingTransaction]:
        """Lovelace paid to ``address`` by one transaction, or None."""
        response = await client.get(f"/txs/{tx_hash}/utxos")
        response.raise_for_status()
        utxos = response.json()
        if not isinstance(utxos, dict):
            raise ValueError(f"Unexpected UTxO payload for {tx_hash}: {utxos!r}")

        inputs = utxos.get("inputs", [])
        if any(i.get("address") == address for i in inputs):
            return None

        lovelace = 0
        for output in utxos.get("outputs", []):
            if output.get("address") != address:
                continue
            for amount in output.get("amount", []):
                if amount.get("unit") == "lovelace":
                    lovelace += int(amount["quantity"])

        if lovelace == 0:
            return None

        senders = {i.get("address") for i in inputs if i.get("address")}
        return IncomingTransaction(
            tx_ref=tx_hash,
            network=Network.ADA,
            to_address=address,
            amount=get_chain(Network.ADA).from_base_units(lovelace),
            timestamp=timestamp,
            from_address=senders.pop() if len(senders) == 1 else None,
        )
