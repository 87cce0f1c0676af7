"""Error taxonomy for deployer.

Every failure that can reach an operator is a DeployerError subclass with a
stable error type, a transient flag and a list of suggestions. Callers decide
what to retry from the error type alone; nothing here retries on its own.
"""

from typing import Any


class ErrorTypes:
    """Stable error type identifiers used for classification and retry."""

    KEY_NOT_FOUND = "KeyNotFound"
    AUTHENTICATION_REJECTED = "AuthenticationRejected"
    UNREACHABLE = "Unreachable"
    TIMED_OUT = "TimedOut"
    EXECUTION_FAILED = "ExecutionFailed"
    MALFORMED_RESULT = "MalformedResult"
    TRANSPORT_ERROR = "TransportError"
    PLAYBOOK_NOT_FOUND = "PlaybookNotFound"
    INVENTORY_ERROR = "InventoryError"
    PROVIDER_ERROR = "ProviderError"
    UNKNOWN = "Unknown"


RETRY_HINT = [
    "This may be caused by slow network or heavy server load",
    "The operation is idempotent, so it is safe to rerun it",
    "Check server load with 'deployer server info'",
    "Or SSH in and inspect the running processes",
]


class DeployerError(Exception):
    """Base class for all classified deployer failures.

    Attributes:
        message: Human readable description of what went wrong
        host: Name or address of the server involved, if any
        suggestions: Operator-facing hints rendered after the message
        error_type: One of the ErrorTypes constants
        transient: Whether the condition is often temporary
    """

    error_type: str = ErrorTypes.UNKNOWN
    transient: bool = False
    default_suggestions: list[str] = []

    def __init__(
        self,
        message: str,
        host: str | None = None,
        suggestions: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.host = host
        self.suggestions = list(
            suggestions if suggestions is not None else self.default_suggestions
        )

    def __str__(self) -> str:
        return self.message

    def format_text(self) -> str:
        """Format the error with its suggestions for terminal output."""
        lines = [f"{self.error_type}: {self.message}"]
        for suggestion in self.suggestions:
            lines.append(f"  - {suggestion}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "host": self.host,
            "transient": self.transient,
            "suggestions": self.suggestions,
        }


class KeyNotFound(DeployerError):
    """No usable private key exists at any candidate path."""

    error_type = ErrorTypes.KEY_NOT_FOUND

    def __init__(self, searched_paths: list[str], host: str | None = None) -> None:
        self.searched_paths = searched_paths
        searched = ", ".join(searched_paths) or "(none)"
        super().__init__(
            f"No usable SSH private key found (searched: {searched})",
            host=host,
            suggestions=[
                "Pass --private-key-path with the key used for this server",
                "Generate a key with: ssh-keygen -t ed25519",
            ],
        )


class AuthenticationRejected(DeployerError):
    """The server was reachable but refused the credentials."""

    error_type = ErrorTypes.AUTHENTICATION_REJECTED
    default_suggestions = [
        "Check the username and private key configured for this server",
        "Make sure the public key is in ~/.ssh/authorized_keys on the server",
    ]


class Unreachable(DeployerError):
    """The connection attempt failed or exceeded its bounded wait."""

    error_type = ErrorTypes.UNREACHABLE
    transient = True
    default_suggestions = RETRY_HINT


class TimedOut(DeployerError):
    """A remote command did not finish within its timeout.

    Attributes:
        timeout: The timeout that was exceeded, in seconds
        phase: "execute" for the playbook itself, "read" for the result read-back
    """

    error_type = ErrorTypes.TIMED_OUT
    transient = True
    default_suggestions = RETRY_HINT

    def __init__(
        self,
        message: str,
        timeout: float,
        phase: str = "execute",
        host: str | None = None,
    ) -> None:
        super().__init__(message, host=host)
        self.timeout = timeout
        self.phase = phase


class ExecutionFailed(DeployerError):
    """The remote script exited non-zero.

    Attributes:
        exit_code: Remote exit status
        output: Everything the script printed, kept for diagnosis
    """

    error_type = ErrorTypes.EXECUTION_FAILED

    def __init__(
        self,
        exit_code: int,
        output: str = "",
        host: str | None = None,
        playbook: str | None = None,
    ) -> None:
        label = f"Playbook '{playbook}'" if playbook else "Remote script"
        super().__init__(f"{label} failed with exit code {exit_code}", host=host)
        self.exit_code = exit_code
        self.output = output


class MalformedResult(DeployerError):
    """The structured result was empty, missing or not a mapping."""

    error_type = ErrorTypes.MALFORMED_RESULT

    def __init__(self, message: str, raw: str = "", host: str | None = None) -> None:
        super().__init__(message, host=host)
        self.raw = raw


class TransportError(DeployerError):
    """Any other SSH or network failure."""

    error_type = ErrorTypes.TRANSPORT_ERROR


class PlaybookNotFound(DeployerError):
    """No playbook script exists under the requested name."""

    error_type = ErrorTypes.PLAYBOOK_NOT_FOUND
    default_suggestions = ["List the available playbooks with 'deployer playbook list'"]


class InventoryError(DeployerError):
    """The inventory file is malformed or a uniqueness rule was violated."""

    error_type = ErrorTypes.INVENTORY_ERROR


class ProviderError(DeployerError):
    """A cloud provider API call failed."""

    error_type = ErrorTypes.PROVIDER_ERROR


class ProviderTimeout(ProviderError):
    """A cloud resource did not become ready in time."""

    error_type = ErrorTypes.TIMED_OUT
    transient = True


def is_transient(exc: BaseException) -> bool:
    """Check whether an exception is a transient deployer failure.

    Args:
        exc: Any exception

    Returns:
        True for Unreachable and TimedOut style errors
    """
    return isinstance(exc, DeployerError) and exc.transient
