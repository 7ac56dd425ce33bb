"""ADA settlement executor.

Builds, signs and submits a payment with pycardano through Blockfrost. The
pycardano chain context is synchronous, so the work runs in a worker thread.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Optional

from pycardano import (
    Address,
    BlockFrostChainContext,
    PaymentSigningKey,
    PaymentVerificationKey,
    TransactionBuilder,
    TransactionOutput,
)
from pycardano import Network as CardanoNetwork

from swapgate.chains import Network, get_chain
from swapgate.settlement.base import (
    SettlementError,
    SettlementExecutor,
    SettlementUnavailableError,
)

logger = logging.getLogger(__name__)

BLOCKFROST_PREPROD = "https://cardano-preprod.blockfrost.io/api/v0"


class CardanoSettlementExecutor(SettlementExecutor):
    """Cardano settlement executor for native ADA transfers."""

    def __init__(
        self,
        project_id: str,
        signing_key_path: Optional[str],
        base_url: str = BLOCKFROST_PREPROD,
        network: str = "testnet",
        custody_address: Optional[str] = None,
    ):
        """Initialize Cardano executor.

        Args:
            project_id: Blockfrost project id
            signing_key_path: cardano-cli ``payment.skey`` file (None = unavailable)
            base_url: Blockfrost API URL (``/v0`` suffix optional)
            network: ``testnet`` or ``mainnet``
            custody_address: Address holding the funds; derived from the key if unset
        """
        super().__init__(Network.ADA)
        self.project_id = project_id
        # pycardano appends the API version itself
        self.base_url = base_url.rstrip("/").removesuffix("/v0")
        self.cardano_network = (
            CardanoNetwork.MAINNET if network.lower() == "mainnet" else CardanoNetwork.TESTNET
        )
        self._signing_key: Optional[PaymentSigningKey] = None
        self._address: Optional[Address] = None
        self._context: Optional[BlockFrostChainContext] = None
        # Concurrent builds would select the same UTxOs
        self._send_lock = asyncio.Lock()
        self._spent_inputs: set[tuple[str, int]] = set()

        if not project_id:
            logger.warning("BLOCKFROST_API_KEY not set - ADA settlement disabled")
            return
        if not signing_key_path:
            return

        try:
            self._signing_key = PaymentSigningKey.load(signing_key_path)
            if custody_address:
                self._address = Address.from_primitive(custody_address)
            else:
                verification_key = PaymentVerificationKey.from_signing_key(self._signing_key)
                self._address = Address(
                    payment_part=verification_key.hash(), network=self.cardano_network
                )
        except Exception as e:
            logger.error(f"Cannot load Cardano signing key, settlement disabled: {e}")
            self._signing_key = None
            self._address = None

    @property
    def available(self) -> bool:
        return self._signing_key is not None and self._address is not None

    @property
    def address(self) -> Optional[str]:
        """Custody wallet address, if a key is configured."""
        return str(self._address) if self._address else None

    async def send(self, recipient_address: str, amount: Decimal) -> str:
        """Send ADA to the recipient and return the transaction hash."""
        if not self.available:
            raise SettlementUnavailableError(self.network)

        chain = get_chain(Network.ADA)
        if amount < chain.min_output:
            raise SettlementError(
                f"{amount} ADA is below the minimum UTxO value of {chain.min_output} ADA"
            )
        lovelace = chain.to_base_units(amount)

        async with self._send_lock:
            try:
                txid = await asyncio.to_thread(
                    self._build_and_submit, recipient_address, lovelace
                )
            except Exception as e:
                raise SettlementError(f"Cardano submission failed: {e}") from e

        logger.info(f"ADA transaction sent: {txid} ({amount} ADA to {recipient_address})")
        return txid

    def _get_context(self) -> BlockFrostChainContext:
        if self._context is None:
            self._context = BlockFrostChainContext(
                project_id=self.project_id,
                base_url=self.base_url,
            )
        return self._context

    def _build_and_submit(self, recipient_address: str, lovelace: int) -> str:
        """Build, sign and submit the payment (blocking).

        The indexer keeps listing UTxOs spent by a transaction that is still in
        the mempool, so inputs of earlier submissions are excluded until they
        disappear from the address.
        """
        context = self._get_context()

        utxos = context.utxos(self._address)
        listed = {_input_key(utxo.input) for utxo in utxos}
        self._spent_inputs &= listed

        builder = TransactionBuilder(context)
        builder.add_input_address(self._address)
        builder.excluded_inputs = [
            utxo for utxo in utxos if _input_key(utxo.input) in self._spent_inputs
        ]
        builder.add_output(TransactionOutput(Address.from_primitive(recipient_address), lovelace))

        signed_tx = builder.build_and_sign([self._signing_key], change_address=self._address)
        context.submit_tx(signed_tx)
        self._spent_inputs.update(_input_key(i) for i in signed_tx.transaction_body.inputs)
        return str(signed_tx.id)


def _input_key(tx_input) -> tuple[str, int]:
    return str(tx_input.transaction_id), int(tx_input.index)
