"""Signer derivation and named account roles for trident-deployments library."""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import is_hex_address, to_checksum_address

from .constants import DEFAULT_DERIVATION_PATH, NAMED_ACCOUNTS
from .exceptions import ConfigurationError, RoleIndexOutOfRangeError, UnknownRoleError
from .types import NetworkProfile

logger = logging.getLogger(__name__)


def _normalize_privkey_hex(pk: str) -> str:
    pk = pk.strip()
    if pk.startswith("0x"):
        pk = pk[2:]
    if len(pk) != 64:
        raise ConfigurationError("private key hex must be 64 characters (32 bytes)")
    int(pk, 16)  # validate hex
    return "0x" + pk


class MnemonicAccounts:
    """Accounts derived from a BIP-39 mnemonic along a BIP-44 path."""

    def __init__(
        self,
        mnemonic: str,
        path: str = DEFAULT_DERIVATION_PATH,
        initial_index: int = 0,
        count: int = 20,
    ):
        if not mnemonic or not mnemonic.strip():
            raise ConfigurationError("mnemonic must not be empty")
        self._mnemonic = " ".join(mnemonic.split())
        self.path = path.rstrip("/")
        self.initial_index = initial_index
        self.count = count
        self._derived: List[LocalAccount] = []

    @property
    def available(self) -> int:
        return self.count

    def signers(self, count: int) -> List[LocalAccount]:
        """Derive the first ``count`` accounts (memoized, deterministic)."""
        count = min(count, self.count)
        if len(self._derived) < count:
            Account.enable_unaudited_hdwallet_features()
            for i in range(len(self._derived), count):
                account_path = f"{self.path}/{self.initial_index + i}"
                self._derived.append(Account.from_mnemonic(self._mnemonic, account_path=account_path))
        return self._derived[:count]

    def __repr__(self) -> str:
        return f"MnemonicAccounts(path={self.path!r}, count={self.count})"


class KeyListAccounts:
    """Accounts given as an explicit ordered list of private keys."""

    def __init__(self, private_keys: Sequence[str]):
        self._keys = [_normalize_privkey_hex(k) for k in private_keys if k and k.strip()]
        if not self._keys:
            raise ConfigurationError("private key list must not be empty")
        self._accounts: Optional[List[LocalAccount]] = None

    @property
    def available(self) -> int:
        return len(self._keys)

    def signers(self, count: int) -> List[LocalAccount]:
        if self._accounts is None:
            self._accounts = [Account.from_key(k) for k in self._keys]
        return self._accounts[:count]

    def __repr__(self) -> str:
        return f"KeyListAccounts(count={len(self._keys)})"


AccountSet = Union[MnemonicAccounts, KeyListAccounts]


def derive_accounts(account_set: AccountSet, count: int) -> List[str]:
    """
    Resolve the first ``count`` checksummed addresses of an account set.

    Args:
        account_set: Mnemonic or key-list accounts
        count: Number of addresses wanted

    Returns:
        Ordered list of addresses; shorter than ``count`` when the set has
        fewer accounts available
    """
    return [to_checksum_address(a.address) for a in account_set.signers(count)]


class AccountResolver:
    """Maps semantic roles (deployer, feeTo, alice, ...) onto account indices."""

    def __init__(self, named_accounts: Optional[Mapping[str, Mapping[Any, Any]]] = None):
        self._roles: Dict[str, Dict[Any, Any]] = {
            role: dict(spec) for role, spec in (named_accounts or NAMED_ACCOUNTS).items()
        }

    def roles(self) -> List[str]:
        return list(self._roles)

    def role_entry(self, role: str, network: Optional[NetworkProfile] = None) -> Union[int, str]:
        """
        Get the configured index (or fixed address) of a role on a network.

        Network-specific keys are looked up by network name, then chain id,
        falling back to "default".

        Raises:
            UnknownRoleError: If role is not configured or has no entry for network
        """
        if role not in self._roles:
            raise UnknownRoleError(f"Named account '{role}' is not configured")

        spec = self._roles[role]
        if network is not None:
            for key in (network.name, network.chain_id, str(network.chain_id)):
                if key in spec:
                    return spec[key]
        if "default" not in spec:
            where = f" on network '{network.name}'" if network else ""
            raise UnknownRoleError(f"Named account '{role}' has no entry{where}")
        return spec["default"]

    def resolve_role(
        self, role: str, account_set: AccountSet, network: Optional[NetworkProfile] = None
    ) -> str:
        """
        Resolve a role to an address.

        Raises:
            UnknownRoleError: If role is not configured
            RoleIndexOutOfRangeError: If the index exceeds the available accounts
        """
        entry = self.role_entry(role, network)
        if isinstance(entry, str):
            if not is_hex_address(entry):
                raise ConfigurationError(f"Named account '{role}' has invalid address {entry!r}")
            return to_checksum_address(entry)
        return to_checksum_address(self.signer(role, account_set, network).address)

    def signer(
        self, role: str, account_set: AccountSet, network: Optional[NetworkProfile] = None
    ) -> LocalAccount:
        """Return the local signing account behind a role."""
        entry = self.role_entry(role, network)
        if isinstance(entry, str):
            raise ConfigurationError(
                f"Named account '{role}' is a fixed address and cannot sign transactions"
            )
        if entry < 0 or entry >= account_set.available:
            raise RoleIndexOutOfRangeError(
                f"Named account '{role}' uses index {entry} but only "
                f"{account_set.available} accounts are available"
            )
        return account_set.signers(entry + 1)[entry]

    def named_addresses(
        self, account_set: AccountSet, network: Optional[NetworkProfile] = None
    ) -> Dict[str, str]:
        """
        Resolve every role, checking that no two roles share an index.

        Returns:
            Dictionary mapping role -> checksummed address
        """
        seen: Dict[int, str] = {}
        for role in self._roles:
            entry = self.role_entry(role, network)
            if isinstance(entry, int):
                if entry in seen:
                    raise ConfigurationError(
                        f"Named accounts '{seen[entry]}' and '{role}' share index {entry}"
                    )
                seen[entry] = role
        return {role: self.resolve_role(role, account_set, network) for role in self._roles}
