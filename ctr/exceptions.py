"""CTR Exception Classes

Base exception hierarchy for the Concourse terraform resource.
All custom exceptions include help_text for actionable user guidance.
"""

from typing import List, Optional


class CTRError(Exception):
    """Base exception for all CTR errors

    All CTR exceptions should inherit from this class so the CLI can
    report them consistently and exit non-zero without writing a response.

    Attributes:
        message: Human-readable error description
        help_text: Optional actionable guidance for resolving the error
    """

    def __init__(self, message: str, help_text: str = None):
        """Initialize CTR error with message and optional help text

        Args:
            message: Error description
            help_text: Optional remediation guidance
        """
        self.message = message
        self.help_text = help_text
        super().__init__(message)

    def __str__(self) -> str:
        """Format error message with help text if available"""
        if self.help_text:
            return f"{self.message}\n\nHelp: {self.help_text}"
        return self.message


class RequestDecodeError(CTRError):
    """Raised when the request document is malformed or violates the schema

    Unknown fields are rejected at every level of the request.
    """

    def __init__(self, operation: str, reason: str):
        """Initialize decode error

        Args:
            operation: Resource operation being decoded (check, in, out)
            reason: Parser or schema error description
        """
        message = f"invalid payload: {reason}"
        help_text = (
            f"Check the '{operation}' request for typos or unsupported fields. "
            "Only documented source and params keys are accepted."
        )
        super().__init__(message, help_text)
        self.operation = operation
        self.reason = reason


class RequestValidationError(CTRError):
    """Raised when a decoded request is missing required configuration

    The message names the failing nested section, e.g.
    ``invalid source: invalid vault config: missing vault addr``.
    """

    def __init__(self, section: str, reason: str):
        """Initialize validation error

        Args:
            section: Request section that failed (source, params, version)
            reason: Description of the missing or invalid value
        """
        message = f"invalid {section}: {reason}"
        help_text = f"Set the missing value in the resource '{section}' configuration"
        super().__init__(message, help_text)
        self.section = section
        self.reason = reason


class EnvironmentConfigError(CTRError):
    """Raised when required build metadata variables are not set

    Concourse provides these variables to every resource container; they
    are missing only when the resource is run by hand.
    """

    def __init__(self, missing: List[str]):
        """Initialize environment error

        Args:
            missing: Names of the unset environment variables
        """
        message = f"failed to parse concourse environment: missing {', '.join(missing)}"
        help_text = "Export the missing variables before running the resource outside Concourse"
        super().__init__(message, help_text)
        self.missing = missing


class RuntimeConfigError(CTRError):
    """Raised when a CTR_* override holds an invalid value"""

    def __init__(self, reason: str):
        """Initialize runtime config error

        Args:
            reason: Offending variables and why they were rejected
        """
        message = f"invalid runtime configuration: {reason}"
        help_text = "Fix or unset the CTR_* variables named above in the resource image"
        super().__init__(message, help_text)
        self.reason = reason


class EvaluationError(CTRError):
    """Raised when a templated field or mapping fails to compile or run"""

    def __init__(self, expression: str, reason: str, kind: str = "field"):
        """Initialize evaluation error

        Args:
            expression: Source text that failed
            reason: Compiler or runtime error description
            kind: Either "field" or "mapping"
        """
        message = f"error evaluating {kind}: {reason}"
        help_text = f"Offending {kind}:\n{expression.strip()}"
        super().__init__(message, help_text)
        self.expression = expression
        self.reason = reason
        self.kind = kind


class CredentialError(CTRError):
    """Raised when the SSH agent cannot be spawned, loaded or primed"""

    def __init__(self, reason: str, help_text: Optional[str] = None):
        super().__init__(
            f"error configuring ssh agent: {reason}",
            help_text or "Verify the private_key value is an unencrypted PEM/OpenSSH key",
        )
        self.reason = reason


class ExternalProcessError(CTRError):
    """Raised when the automation tool fails to start or exits non-zero"""

    def __init__(
        self,
        command: str,
        exit_code: Optional[int] = None,
        reason: Optional[str] = None
    ):
        """Initialize external process error

        Args:
            command: Executable that was invoked
            exit_code: Process exit code, if the process ran
            reason: Spawn or timeout failure description
        """
        if exit_code is not None:
            message = f"error executing {command}: exit status {exit_code}"
        else:
            message = f"error executing {command}: {reason}"

        help_text = "Inspect the playbook output above for the failing task"
        if exit_code is None:
            help_text = f"Make sure '{command}' is installed and on PATH"

        super().__init__(message, help_text)
        self.command = command
        self.exit_code = exit_code
        self.reason = reason
