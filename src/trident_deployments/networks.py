"""Network registry for trident-deployments library."""

import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

from .accounts import KeyListAccounts, MnemonicAccounts
from .constants import DEFAULT_MNEMONIC, EPHEMERAL_NETWORK, NETWORK_CONFIG
from .exceptions import ConfigurationError, MissingSecretError, UnknownNetworkError
from .settings import Settings
from .types import Explorer, Forking, GasPolicy, NetworkProfile

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\$\{([A-Z0-9_]+)\}")
_SECRETISH = re.compile(r"[A-Za-z0-9_-]{20,}")


def mask_url(url: str) -> str:
    """
    Hide credentials in an RPC URL before it is logged.

    Path segments that look like API keys and any userinfo are replaced.
    """
    if not url:
        return url
    parts = urlsplit(url)
    netloc = parts.netloc.rsplit("@", 1)[-1]
    path = "/".join(
        "***" if _SECRETISH.fullmatch(seg) else seg for seg in parts.path.split("/")
    )
    return urlunsplit((parts.scheme, netloc, path, "", ""))


def substitute_secrets(template: str, secrets: Mapping[str, Optional[str]]) -> Tuple[str, List[str]]:
    """
    Fill ${NAME} placeholders in a URL template.

    Args:
        template: URL possibly containing ${NAME} placeholders
        secrets: Mapping of placeholder name -> value

    Returns:
        Tuple of (url, missing) where missing lists placeholders without a value
    """
    missing: List[str] = []

    def _sub(match: "re.Match[str]") -> str:
        value = secrets.get(match.group(1))
        if not value:
            missing.append(match.group(1))
            return ""
        return value

    return _PLACEHOLDER.sub(_sub, template).strip(), missing


def _confirmation_timeout(block_time: float, confirmations: int) -> float:
    # Generous multiple of the expected wait, never below a minute
    return max(60.0, block_time * max(confirmations, 1) * 10)


def _gas_policy(config: Mapping[str, Any], hardfork: Optional[str]) -> GasPolicy:
    if config.get("gas_price") is not None:
        return GasPolicy.fixed(int(config["gas_price"]))
    if hardfork == "london":
        return GasPolicy.dynamic()
    return GasPolicy.estimate(float(config.get("gas_price_multiplier", 1.0)))


def build_profile(name: str, config: Mapping[str, Any], settings: Settings) -> NetworkProfile:
    """
    Build a NetworkProfile from one entry of the network table.

    Secrets are substituted here, once. Missing secrets do not fail the load;
    they are recorded on the profile and raised when the network is selected.
    """
    missing: List[str] = []
    live = bool(config.get("live", True))
    save_deployments = bool(config.get("save_deployments", live))

    url, url_missing = substitute_secrets(config.get("url", ""), settings.secrets())
    missing.extend(url_missing)

    hardfork = config.get("hardfork")
    if hardfork == "london" and settings.code_coverage:
        # solidity-coverage sends gasPrice=1, which london rejects
        hardfork = "berlin"

    accounts_config = config.get("accounts")
    accounts = None
    if isinstance(accounts_config, list):
        accounts = KeyListAccounts(accounts_config)
    elif accounts_config == "mnemonic" or accounts_config is None:
        mnemonic = settings.mnemonic
        if not mnemonic:
            if live:
                missing.append("MNEMONIC")
            else:
                mnemonic = DEFAULT_MNEMONIC
        if mnemonic:
            accounts = MnemonicAccounts(mnemonic)
    else:
        raise ConfigurationError(f"Network '{name}' has unsupported accounts setting {accounts_config!r}")

    forking = None
    if config.get("forking") and settings.forking:
        fork_url, fork_missing = substitute_secrets(config["forking"]["url"], settings.secrets())
        missing.extend(fork_missing)
        forking = Forking(url=fork_url, block_number=config["forking"].get("block_number"))

    explorer = None
    if config.get("explorer"):
        explorer = Explorer(
            api_url=config["explorer"]["api_url"],
            browser_url=config["explorer"]["browser_url"],
        )

    confirmations = int(config.get("confirmations", 1))
    block_time = float(config.get("block_time", 12))

    return NetworkProfile(
        name=name,
        chain_id=int(config["chain_id"]),
        url=url,
        live=live,
        save_deployments=save_deployments,
        gas_policy=_gas_policy(config, hardfork),
        gas_multiplier=float(config.get("gas_multiplier", 1.0)),
        block_gas_limit=config.get("block_gas_limit"),
        contract_size_limit=config.get("contract_size_limit", 24576),
        tags=tuple(config.get("tags", ())),
        accounts=accounts,
        confirmations=confirmations,
        confirmation_timeout=float(
            config.get("confirmation_timeout", _confirmation_timeout(block_time, confirmations))
        ),
        hardfork=hardfork,
        native_currency=config.get("native_currency", "ETH"),
        explorer=explorer,
        forking=forking,
        missing_secrets=tuple(dict.fromkeys(missing)),
    )


class NetworkRegistry:
    """Read-only table of supported networks."""

    def __init__(self, profiles: Iterable[NetworkProfile], ephemeral: str = EPHEMERAL_NETWORK):
        """
        Initialize the registry.

        Args:
            profiles: Network profiles, in table order
            ephemeral: Name of the in-process network allowed to have no URL

        Raises:
            ConfigurationError: If chain ids collide, a network lacks an endpoint,
                                or a non-live network would persist deployments
        """
        self._profiles: Dict[str, NetworkProfile] = {}
        self.ephemeral = ephemeral
        chain_ids: Dict[int, str] = {}

        for profile in profiles:
            if profile.name in self._profiles:
                raise ConfigurationError(f"Duplicate network name '{profile.name}'")
            if profile.chain_id in chain_ids:
                raise ConfigurationError(
                    f"Chain id {profile.chain_id} used by both "
                    f"'{chain_ids[profile.chain_id]}' and '{profile.name}'"
                )
            if not profile.url and profile.name != ephemeral and not profile.missing_secrets:
                raise ConfigurationError(f"Network '{profile.name}' has no RPC endpoint")
            if not profile.live and profile.save_deployments:
                raise ConfigurationError(
                    f"Network '{profile.name}' is not live but is configured to save deployments"
                )
            chain_ids[profile.chain_id] = profile.name
            self._profiles[profile.name] = profile

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        table: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> "NetworkRegistry":
        """Load the registry from the static network table and explicit settings."""
        table = NETWORK_CONFIG if table is None else table
        return cls(build_profile(name, config, settings) for name, config in table.items())

    def has_network(self, name: str) -> bool:
        return name in self._profiles

    def names(self) -> List[str]:
        return list(self._profiles)

    def resolve(self, name: str) -> NetworkProfile:
        """
        Get the profile of a network.

        Args:
            name: Network name (e.g., "polygon")

        Returns:
            NetworkProfile

        Raises:
            UnknownNetworkError: If network is not in the registry
            MissingSecretError: If the network needs a secret that was not supplied
        """
        if name not in self._profiles:
            raise UnknownNetworkError(
                f"Network '{name}' not found. Available: {', '.join(self._profiles)}"
            )
        profile = self._profiles[name]
        if profile.missing_secrets:
            raise MissingSecretError(
                f"Network '{name}' requires {', '.join(profile.missing_secrets)} "
                "to be set in the environment"
            )
        return profile

    def list_by_tag(self, tag: str) -> List[NetworkProfile]:
        """Networks carrying a tag, in table order."""
        return [p for p in self._profiles.values() if tag in p.tags]

    def by_chain_id(self, chain_id: int) -> NetworkProfile:
        for profile in self._profiles.values():
            if profile.chain_id == chain_id:
                return self.resolve(profile.name)
        raise UnknownNetworkError(f"No network with chain id {chain_id}")

    def __iter__(self):
        return iter(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)
