"""Transaction pricing for trident-deployments library."""

import logging
from typing import Dict

from .types import GasPolicy, GasPolicyKind, NetworkProfile

logger = logging.getLogger(__name__)


async def resolve_gas_fields(policy: GasPolicy, chain) -> Dict[str, int]:
    """
    Turn a network's gas policy into transaction pricing fields.

    Args:
        policy: The network's GasPolicy
        chain: ChainClient queried for live prices (not used for FIXED)

    Returns:
        {"gasPrice": wei} for FIXED and ESTIMATE policies, or
        {"maxFeePerGas": wei, "maxPriorityFeePerGas": wei} for DYNAMIC
    """
    match policy.kind:
        case GasPolicyKind.FIXED:
            return {"gasPrice": int(policy.gas_price)}
        case GasPolicyKind.ESTIMATE:
            price = await chain.gas_price()
            return {"gasPrice": int(price * policy.multiplier)}
        case GasPolicyKind.DYNAMIC:
            base_fee = await chain.base_fee()
            priority = int(policy.priority_fee or 0)
            return {
                "maxFeePerGas": int(base_fee * policy.base_fee_multiplier) + priority,
                "maxPriorityFeePerGas": priority,
            }
    raise ValueError(f"Unsupported gas policy {policy.kind}")


def resolve_gas_limit(estimate: int, network: NetworkProfile) -> int:
    """
    Scale a gas estimate by the network multiplier, capped at the block gas limit.

    Example:
        >>> resolve_gas_limit(100_000, polygon_with_multiplier_2)
        200000
    """
    limit = int(estimate * network.gas_multiplier)
    if network.block_gas_limit is not None and limit > network.block_gas_limit:
        logger.debug(
            "Gas limit %d capped to block gas limit %d on %s",
            limit, network.block_gas_limit, network.name,
        )
        limit = int(network.block_gas_limit)
    return limit
