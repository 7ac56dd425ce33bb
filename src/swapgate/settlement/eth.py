"""ETH settlement executor.

Signs a plain value transfer locally with eth-account and broadcasts it over
JSON-RPC.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Optional

import httpx
from eth_account import Account
from web3 import Web3

from swapgate.chains import Network
from swapgate.settlement.base import (
    SettlementError,
    SettlementExecutor,
    SettlementUnavailableError,
)

logger = logging.getLogger(__name__)

# Public RPC (rate limited)
PUBLIC_RPC_SEPOLIA = "https://rpc.sepolia.org"
SEPOLIA_CHAIN_ID = 11155111

# Standard ETH transfer uses 21000 gas
TRANSFER_GAS = 21000


class EthSettlementExecutor(SettlementExecutor):
    """Ethereum settlement executor for native ETH transfers."""

    def __init__(
        self,
        private_key: Optional[str],
        rpc_url: str = PUBLIC_RPC_SEPOLIA,
        chain_id: int = SEPOLIA_CHAIN_ID,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize ETH executor.

        Args:
            private_key: Hex private key of the custody wallet (None = unavailable)
            rpc_url: JSON-RPC endpoint
            chain_id: EVM chain id used for replay protection
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport (tests)
        """
        super().__init__(Network.ETH)
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self.timeout = timeout
        self._transport = transport
        self._account = None
        # Sends share one nonce sequence
        self._send_lock = asyncio.Lock()
        self._next_nonce: Optional[int] = None

        if private_key:
            try:
                self._account = Account.from_key(private_key)
            except (ValueError, TypeError) as e:
                logger.error(f"Invalid ETH private key, settlement disabled: {e}")

    @property
    def available(self) -> bool:
        return self._account is not None

    @property
    def address(self) -> Optional[str]:
        """Custody wallet address, if a key is configured."""
        return self._account.address if self._account else None

    async def send(self, recipient_address: str, amount: Decimal) -> str:
        """Send ETH to the recipient and return the transaction hash."""
        if self._account is None:
            raise SettlementUnavailableError(self.network)

        try:
            to_address = Web3.to_checksum_address(recipient_address)
        except (ValueError, TypeError) as e:
            raise SettlementError(f"Invalid ETH recipient {recipient_address}: {e}") from e

        value_wei = Web3.to_wei(amount, "ether")
        if value_wei <= 0:
            raise SettlementError(f"Refusing to send non-positive amount {amount} ETH")

        async with self._send_lock:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                nonce = await self._get_next_nonce(client)
                gas_price = int(await self._rpc(client, "eth_gasPrice", []), 16)

                tx = {
                    "nonce": nonce,
                    "gasPrice": gas_price,
                    "gas": TRANSFER_GAS,
                    "to": to_address,
                    "value": value_wei,
                    "chainId": self.chain_id,
                }

                # Sign transaction
                signed_tx = self._sign(tx)

                # Broadcast
                try:
                    txid = await self._rpc(
                        client,
                        "eth_sendRawTransaction",
                        [Web3.to_hex(signed_tx.raw_transaction)],
                    )
                except SettlementError:
                    # Re-read from the node next time
                    self._next_nonce = None
                    raise

            self._next_nonce = nonce + 1

        logger.info(f"ETH transaction sent: {txid} ({amount} ETH to {to_address}, nonce {nonce})")
        return txid

    async def _get_next_nonce(self, client: httpx.AsyncClient) -> int:
        """Next nonce for the custody wallet.

        The node's pending count can lag behind a transaction broadcast a
        moment ago, so the higher of it and the locally tracked nonce wins.
        Must be called with the send lock held.
        """
        chain_nonce = int(
            await self._rpc(client, "eth_getTransactionCount", [self._account.address, "pending"]),
            16,
        )
        if self._next_nonce is None:
            return chain_nonce
        return max(chain_nonce, self._next_nonce)

    def _sign(self, tx: dict):
        return self._account.sign_transaction(tx)

    async def _rpc(self, client: httpx.AsyncClient, method: str, params: list) -> Any:
        """Call a JSON-RPC method and return its result."""
        try:
            response = await client.post(
                self.rpc_url,
                json={"jsonrpc": "2.0", "method": method, "params": params, "id": 1},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise SettlementError(f"ETH RPC {method} failed: {e}") from e

        if data.get("error"):
            raise SettlementError(f"ETH RPC {method} error: {data['error']}")
        if data.get("result") is None:
            raise SettlementError(f"ETH RPC {method} returned no result")
        return data["result"]
