"""Path management utilities for trident-deployments library."""

from pathlib import Path
from typing import Optional, Union


def get_default_deployments_dir() -> Path:
    """
    Get default deployments directory (current working directory).

    Returns:
        Path to ./deployments
    """
    return Path.cwd() / "deployments"


def get_network_paths(network: str, deployments_root: Optional[Union[Path, str]] = None) -> tuple[Path, Path]:
    """
    Get record paths for one network.

    Args:
        network: Network name (e.g., "polygon")
        deployments_root: Custom deployments directory (defaults to ./deployments)

    Returns:
        Tuple of (network_dir, pending_dir)
    """
    if deployments_root is None:
        deployments_root = get_default_deployments_dir()
    else:
        deployments_root = Path(deployments_root).absolute()

    network_dir = deployments_root / network
    pending_dir = network_dir / ".pending"

    return (network_dir, pending_dir)
