"""Factory for creating settlement executors.

One executor per destination network; the coordinator picks one through the
dispatch table returned by get_executors().
"""

import logging

from swapgate.chains import Network
from swapgate.config import get_settings
from swapgate.settlement.base import SettlementExecutor, SimulatedSettlementExecutor

logger = logging.getLogger(__name__)

# Cache for executor instances
_executor_cache: dict[Network, SettlementExecutor] = {}

# Placeholder custody addresses used in dry-run mode when none are configured
SIMULATED_CUSTODY_ADDRESSES = {
    Network.ADA: "addr_test1vqsimulatedcustody0000000000000000000000000000000000",
    Network.ETH: "0x000000000000000000000000000000000000dEaD",
}


def get_executor(network: Network) -> SettlementExecutor:
    """Get the settlement executor for a destination network.

    The returned executor may be unavailable (no signing key configured);
    callers check ``executor.available`` before claiming an order.
    """
    network = Network(network)

    # Check cache
    if network in _executor_cache:
        return _executor_cache[network]

    settings = get_settings()

    if settings.dry_run:
        executor: SettlementExecutor = SimulatedSettlementExecutor(network)

    elif network is Network.ETH:
        from swapgate.settlement.eth import EthSettlementExecutor

        executor = EthSettlementExecutor(
            private_key=settings.eth_private_key,
            rpc_url=settings.eth_rpc_url,
            chain_id=settings.eth_chain_id,
            timeout=settings.send_timeout,
        )

    else:
        from swapgate.settlement.ada import CardanoSettlementExecutor

        executor = CardanoSettlementExecutor(
            project_id=settings.blockfrost_api_key,
            signing_key_path=settings.ada_signing_key_path,
            base_url=settings.blockfrost_url,
            network=settings.ada_network,
            custody_address=settings.ada_custody_address,
        )

    if not executor.available:
        logger.warning(
            f"{network.value} settlement executor unavailable - "
            f"orders paying out {network.value} will stay parked in 'deposited'"
        )

    _executor_cache[network] = executor
    return executor


def get_executors() -> dict[Network, SettlementExecutor]:
    """Executors for every destination network, keyed by network."""
    return {network: get_executor(network) for network in Network}


def get_custody_addresses() -> dict[Network, str]:
    """Custody (deposit) address per network from configuration.

    The ETH address falls back to the address of the configured signing key;
    dry-run mode fills any gap with a placeholder address.
    """
    settings = get_settings()
    addresses: dict[Network, str] = {}

    if settings.ada_custody_address:
        addresses[Network.ADA] = settings.ada_custody_address

    if settings.eth_custody_address:
        addresses[Network.ETH] = settings.eth_custody_address
    elif settings.eth_private_key:
        from eth_account import Account

        try:
            addresses[Network.ETH] = Account.from_key(settings.eth_private_key).address
        except (ValueError, TypeError) as e:
            logger.error(f"Cannot derive ETH custody address: {e}")

    if settings.dry_run:
        for network, address in SIMULATED_CUSTODY_ADDRESSES.items():
            addresses.setdefault(network, address)

    return addresses


def reset_executor_cache() -> None:
    """Clear executor cache (useful for testing)."""
    _executor_cache.clear()
