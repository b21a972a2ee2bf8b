"""Custom exception classes for trident-deployments library."""


class DeploymentError(Exception):
    """Base exception for deployment-related errors."""

    pass


# Configuration errors: fatal, surfaced immediately, never retried


class ConfigurationError(DeploymentError, ValueError):
    """Raised when the network, account, compiler or plan configuration is invalid."""

    pass


class UnknownNetworkError(ConfigurationError):
    """Raised when requested network is not in the registry."""

    pass


class MissingSecretError(ConfigurationError):
    """Raised when a selected network needs a secret that was not supplied."""

    pass


class CyclicDependencyError(ConfigurationError):
    """Raised when contract dependencies form a cycle."""

    def __init__(self, message: str, cycle=None):
        super().__init__(message)
        self.cycle = list(cycle or [])


class NoCompatibleCompilerError(ConfigurationError):
    """Raised when no configured compiler satisfies a source pragma."""

    pass


class InvalidPragmaError(ConfigurationError):
    """Raised when a version pragma cannot be parsed."""

    pass


class UnknownRoleError(ConfigurationError):
    """Raised when a named account role is not configured."""

    pass


class RoleIndexOutOfRangeError(ConfigurationError):
    """Raised when a role's account index exceeds the derived accounts."""

    pass


# Transient errors: retried with backoff where they occur


class TransientNetworkError(DeploymentError, ConnectionError):
    """Raised for recoverable remote failures (RPC hiccups, explorer outages)."""

    pass


class RpcError(TransientNetworkError):
    """Raised when a JSON-RPC call fails at the transport level."""

    pass


class ConfirmationTimeoutError(TransientNetworkError):
    """Raised when a transaction is not confirmed within the wait timeout."""

    pass


class VerificationUnavailableError(TransientNetworkError):
    """Raised when the verification service is temporarily unavailable."""

    pass


# Step failures: recorded against a single deployment step


class StepFailure(DeploymentError):
    """Raised when a deployment step cannot complete."""

    pass


class TransactionRevertedError(StepFailure):
    """Raised when a deployment transaction is mined with a failed status."""

    pass


class TransactionRejectedError(StepFailure):
    """Raised when the node refuses a transaction (insufficient funds, bad nonce, underpriced)."""

    pass


class ContractSizeExceededError(StepFailure):
    """Raised when deployed bytecode exceeds the network's contract size limit."""

    pass


class CompilationError(StepFailure):
    """Raised when the compiler fails on a contract source."""

    pass


class RecordWriteFailedError(DeploymentError, OSError):
    """Raised when a deployment record cannot be persisted after a successful deploy."""

    pass


class VerificationRejectedError(DeploymentError):
    """Raised when the verification service definitively rejects a submission."""

    pass


class DefectiveRecordError(DeploymentError, ValueError):
    """Raised when a deployment record file is missing required block number."""

    pass
