"""Data types and dataclasses for trident-deployments library."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

# MnemonicAccounts or KeyListAccounts, see accounts.py
AccountSetLike = Any


class GasPolicyKind(Enum):
    """
    Transaction pricing strategies.

    Value strings define de/serialization law.
    """

    FIXED = "fixed"
    ESTIMATE = "estimate"
    DYNAMIC = "dynamic"


@dataclass(frozen=True)
class GasPolicy:
    """How a network prices transactions."""

    kind: GasPolicyKind
    gas_price: Optional[int] = None  # wei, FIXED only
    multiplier: float = 1.0  # applied to eth_gasPrice, ESTIMATE only
    priority_fee: Optional[int] = None  # wei, DYNAMIC only
    base_fee_multiplier: float = 2.0  # maxFee = base * multiplier + priority

    @classmethod
    def fixed(cls, gas_price: int) -> "GasPolicy":
        return cls(GasPolicyKind.FIXED, gas_price=gas_price)

    @classmethod
    def estimate(cls, multiplier: float = 1.0) -> "GasPolicy":
        return cls(GasPolicyKind.ESTIMATE, multiplier=multiplier)

    @classmethod
    def dynamic(cls, priority_fee: int = 1_500_000_000, base_fee_multiplier: float = 2.0) -> "GasPolicy":
        return cls(
            GasPolicyKind.DYNAMIC,
            priority_fee=priority_fee,
            base_fee_multiplier=base_fee_multiplier,
        )


@dataclass(frozen=True)
class Explorer:
    """Etherscan-compatible explorer endpoints for a network."""

    api_url: str
    browser_url: str


@dataclass(frozen=True)
class Forking:
    """Mainnet fork settings for the in-process network."""

    url: str
    block_number: Optional[int] = None


@dataclass
class NetworkProfile:
    """Everything needed to talk to and deploy on one chain."""

    # Required fields
    name: str  # e.g., "polygon"
    chain_id: int
    url: str  # RPC endpoint, may embed API keys
    live: bool
    save_deployments: bool
    gas_policy: GasPolicy

    # Optional fields
    gas_multiplier: float = 1.0  # scales gas limit estimates
    block_gas_limit: Optional[int] = None
    contract_size_limit: Optional[int] = 24576  # EIP-170, None means unlimited
    tags: Tuple[str, ...] = ()
    accounts: Optional[AccountSetLike] = None
    confirmations: int = 1
    confirmation_timeout: float = 120.0  # seconds per wait attempt
    hardfork: Optional[str] = None
    native_currency: str = "ETH"
    explorer: Optional[Explorer] = None
    forking: Optional[Forking] = None
    missing_secrets: Tuple[str, ...] = ()

    @property
    def supports_eip1559(self) -> bool:
        return self.gas_policy.kind is GasPolicyKind.DYNAMIC


@dataclass(frozen=True)
class CompilerProfile:
    """A solc version with its optimizer settings."""

    version: str  # e.g., "0.8.10"
    optimizer_enabled: bool = True
    optimizer_runs: int = 200

    def settings(self) -> Dict[str, Any]:
        """Return the standard-JSON ``settings.optimizer`` block."""
        return {"optimizer": {"enabled": self.optimizer_enabled, "runs": self.optimizer_runs}}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "optimizer": {"enabled": self.optimizer_enabled, "runs": self.optimizer_runs},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompilerProfile":
        optimizer = data.get("optimizer", {})
        return cls(
            version=data["version"],
            optimizer_enabled=optimizer.get("enabled", False),
            optimizer_runs=optimizer.get("runs", 200),
        )


class VerificationStatus(Enum):
    """Explorer verification state of a deployment record."""

    UNVERIFIED = "unverified"
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"


@dataclass
class DeploymentRecord:
    """Persisted metadata for a contract deployed on one network."""

    # Required fields
    network: str
    name: str  # Deployment name, e.g., "MasterDeployer"
    address: str  # Checksummed address
    transaction_hash: str
    block_number: int
    compiler: CompilerProfile

    # Optional fields
    args: List[Any] = field(default_factory=list)
    gas_used: Optional[int] = None
    effective_gas_price: Optional[int] = None
    verification: VerificationStatus = VerificationStatus.UNVERIFIED
    sequence: int = 0
    abi: List[Dict[str, Any]] = field(default_factory=list)
    bytecode: Optional[str] = None
    deployed_bytecode: Optional[str] = None
    solc_long_version: Optional[str] = None
    source: Optional[str] = None  # source path the contract was compiled from
    contract: Optional[str] = None  # artifact name when it differs from name
    deployed_at: Optional[str] = None  # ISO timestamp


@dataclass(frozen=True)
class ContractRef:
    """Constructor argument that resolves to another deployment's address."""

    name: str


@dataclass(frozen=True)
class RoleRef:
    """Constructor argument that resolves to a named account's address."""

    role: str


Argument = Union[ContractRef, RoleRef, Any]


@dataclass
class ContractSpec:
    """One deployable contract and how to construct it."""

    name: str
    source: str  # path of the .sol file, relative to the sources root
    contract: Optional[str] = None  # artifact name, defaults to name
    args: List[Argument] = field(default_factory=list)
    depends_on: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    deployer: str = "deployer"  # named account that signs the deployment

    @property
    def artifact(self) -> str:
        return self.contract or self.name

    def references(self) -> List[str]:
        """Names of deployments this contract needs, in declaration order."""
        names: List[str] = []
        pending = list(self.args)
        while pending:
            arg = pending.pop(0)
            if isinstance(arg, ContractRef) and arg.name not in names:
                names.append(arg.name)
            elif isinstance(arg, (list, tuple)):
                pending[:0] = list(arg)
        for name in self.depends_on:
            if name not in names:
                names.append(name)
        return names


class StepState(Enum):
    """Lifecycle of a single deployment step."""

    PENDING = "pending"
    COMPILING = "compiling"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    DEPLOYED = "deployed"
    FAILED = "failed"


class OutcomeStatus(Enum):
    """Per-contract result shown to the operator."""

    DEPLOYED = "deployed"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class CompiledContract:
    """Compiler output needed to deploy and verify one contract."""

    abi: List[Dict[str, Any]]
    bytecode: str
    deployed_bytecode: str
    long_version: Optional[str] = None
    standard_json: Optional[Dict[str, Any]] = None

    @property
    def deployed_size(self) -> int:
        code = self.deployed_bytecode[2:] if self.deployed_bytecode.startswith("0x") else self.deployed_bytecode
        return len(code) // 2


@dataclass(frozen=True)
class TransactionReceipt:
    """The subset of a receipt the orchestrator relies on."""

    transaction_hash: str
    block_number: int
    status: int
    contract_address: Optional[str] = None
    gas_used: Optional[int] = None
    effective_gas_price: Optional[int] = None


@dataclass(frozen=True)
class VerificationRequest:
    """What the explorer needs to match deployed code against source."""

    chain_id: int
    address: str
    contract_name: str  # "path/To.sol:Name"
    compiler: CompilerProfile
    long_version: Optional[str]
    source: Dict[str, Any]  # standard-JSON input
    constructor_args: str = ""  # ABI-encoded hex without 0x


@dataclass(frozen=True)
class VerificationTicket:
    """Result of a verification submission."""

    network: str
    address: str
    status: VerificationStatus
    reference: Optional[str] = None  # explorer guid
    message: Optional[str] = None


@dataclass
class StepOutcome:
    """Final state of one step in a run."""

    name: str
    status: OutcomeStatus
    state: StepState
    record: Optional[DeploymentRecord] = None
    reason: Optional[str] = None
    record_write_failed: bool = False
    verification: Optional[VerificationStatus] = None


@dataclass
class RunReport:
    """Outcome of one orchestration run on one network."""

    network: str
    outcomes: Dict[str, StepOutcome] = field(default_factory=dict)
    transactions: int = 0

    @property
    def failed(self) -> List[str]:
        return [n for n, o in self.outcomes.items() if o.status is OutcomeStatus.FAILED]

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0

    def format_table(self) -> str:
        """Render the per-contract outcome table."""
        rows = [("Contract", "Outcome", "Verification", "Address", "Detail")]
        for name, outcome in self.outcomes.items():
            verification = outcome.verification.value if outcome.verification else "-"
            address = outcome.record.address if outcome.record else "-"
            detail = outcome.reason or ""
            if outcome.record_write_failed:
                detail = (detail + " " if detail else "") + "(record not saved)"
            rows.append((name, outcome.status.value, verification, address, detail))
        widths = [max(len(str(row[i])) for row in rows) for i in range(len(rows[0]))]
        lines = [
            "  ".join(str(cell).ljust(widths[i]) for i, cell in enumerate(row)).rstrip()
            for row in rows
        ]
        lines.insert(1, "  ".join("-" * w for w in widths))
        return "\n".join(lines)
