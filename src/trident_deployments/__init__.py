"""
trident-deployments: Python library for deploying Trident contracts across EVM networks
"""

from importlib.metadata import PackageNotFoundError, version

from .accounts import AccountResolver, KeyListAccounts, MnemonicAccounts, derive_accounts
from .chain import Web3ChainClient
from .compilers import CompilerSelector, SolcxCompiler, remove_console_log
from .exceptions import (
    CompilationError,
    ConfigurationError,
    ConfirmationTimeoutError,
    ContractSizeExceededError,
    CyclicDependencyError,
    DefectiveRecordError,
    DeploymentError,
    InvalidPragmaError,
    MissingSecretError,
    NoCompatibleCompilerError,
    RecordWriteFailedError,
    RoleIndexOutOfRangeError,
    RpcError,
    StepFailure,
    TransactionRejectedError,
    TransactionRevertedError,
    TransientNetworkError,
    UnknownNetworkError,
    UnknownRoleError,
    VerificationRejectedError,
    VerificationUnavailableError,
)
from .networks import NetworkRegistry
from .orchestrator import DeploymentOrchestrator
from .plan import build_plan, load_manifest, select_by_tags
from .records import JsonDeploymentStore, MemoryDeploymentStore, open_store
from .reporting import GasReporter
from .settings import Settings
from .types import (
    CompilerProfile,
    ContractRef,
    ContractSpec,
    DeploymentRecord,
    GasPolicy,
    NetworkProfile,
    OutcomeStatus,
    RoleRef,
    RunReport,
)
from .verification import EtherscanVerifier, VerificationGateway

try:
    __version__ = version("trident-deployments")
except PackageNotFoundError:
    __version__ = None

__all__ = [
    "NetworkRegistry",
    "AccountResolver",
    "MnemonicAccounts",
    "KeyListAccounts",
    "derive_accounts",
    "CompilerSelector",
    "SolcxCompiler",
    "remove_console_log",
    "DeploymentOrchestrator",
    "build_plan",
    "select_by_tags",
    "load_manifest",
    "JsonDeploymentStore",
    "MemoryDeploymentStore",
    "open_store",
    "Web3ChainClient",
    "VerificationGateway",
    "EtherscanVerifier",
    "GasReporter",
    "Settings",
    "NetworkProfile",
    "GasPolicy",
    "CompilerProfile",
    "ContractSpec",
    "ContractRef",
    "RoleRef",
    "DeploymentRecord",
    "OutcomeStatus",
    "RunReport",
    "DeploymentError",
    "ConfigurationError",
    "UnknownNetworkError",
    "MissingSecretError",
    "CyclicDependencyError",
    "NoCompatibleCompilerError",
    "InvalidPragmaError",
    "UnknownRoleError",
    "RoleIndexOutOfRangeError",
    "TransientNetworkError",
    "RpcError",
    "ConfirmationTimeoutError",
    "VerificationUnavailableError",
    "StepFailure",
    "TransactionRevertedError",
    "TransactionRejectedError",
    "ContractSizeExceededError",
    "CompilationError",
    "RecordWriteFailedError",
    "VerificationRejectedError",
    "DefectiveRecordError",
]
