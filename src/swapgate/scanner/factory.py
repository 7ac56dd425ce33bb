"""Factory for creating chain observers.

Supported observers:
- ETH: Etherscan API v2
- ADA: Blockfrost
- dry-run mode: in-memory SimulatedObserver for both networks
"""

import logging

from swapgate.chains import Network
from swapgate.config import get_settings
from swapgate.scanner.base import ChainObserver, SimulatedObserver

logger = logging.getLogger(__name__)

# Cache for observer instances
_observer_cache: dict[Network, ChainObserver] = {}


def get_observer(network: Network) -> ChainObserver:
    """Get a chain observer for a network.

    Args:
        network: Network the custody address lives on

    Returns:
        ChainObserver instance for the network
    """
    network = Network(network)

    # Check cache
    if network in _observer_cache:
        return _observer_cache[network]

    settings = get_settings()

    # In dry-run mode, use simulated observer
    if settings.dry_run:
        observer: ChainObserver = SimulatedObserver(network)

    elif network is Network.ETH:
        from swapgate.scanner.etherscan import EtherscanObserver

        if not settings.etherscan_api_key:
            logger.warning("ETHERSCAN_API_KEY not set - Etherscan will rate limit heavily")
        observer = EtherscanObserver(
            api_key=settings.etherscan_api_key,
            chain_id=settings.eth_chain_id,
            base_url=settings.etherscan_api_url,
            min_confirmations=settings.eth_min_confirmations,
            timeout=settings.indexer_timeout,
        )

    else:
        from swapgate.scanner.blockfrost import BlockfrostObserver

        if not settings.blockfrost_api_key:
            logger.warning("BLOCKFROST_API_KEY not set - ADA deposits cannot be observed")
        observer = BlockfrostObserver(
            project_id=settings.blockfrost_api_key,
            base_url=settings.blockfrost_url,
            timeout=settings.indexer_timeout,
        )

    _observer_cache[network] = observer
    return observer


def get_observers() -> dict[Network, ChainObserver]:
    """Observers for every network, keyed by network."""
    return {network: get_observer(network) for network in Network}


def reset_observer_cache() -> None:
    """Clear observer cache (useful for testing)."""
    _observer_cache.clear()
