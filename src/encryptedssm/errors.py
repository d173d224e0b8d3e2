"""
encryptedssm exception hierarchy.

Every failure the reconciler surfaces inherits from :class:`EncryptedSSMError`.
Failures of a remote SSM call carry the parameter identifier, the API
operation that failed and the underlying botocore error.
"""

from __future__ import annotations

import re

from botocore.exceptions import ClientError

_ARN_RE = re.compile(r"arn:aws[a-zA-Z-]*:[a-zA-Z0-9-]+:\S+")
_ACCOUNT_RE = re.compile(r"\b\d{12}\b")


def sanitize_error(msg: str) -> str:
    """Strip ARNs and AWS account IDs from error messages."""
    msg = _ARN_RE.sub("arn:***", msg)
    msg = _ACCOUNT_RE.sub("***", msg)
    return msg


def is_aws_error(err: BaseException | None, code: str, message: str = "") -> bool:
    """True when *err* is a ClientError with error *code* whose message contains *message*."""
    if not isinstance(err, ClientError):
        return False
    error = err.response.get("Error", {})
    if error.get("Code") != code:
        return False
    return message in (error.get("Message") or "")


# ── Base ──────────────────────────────────────────────────────────────
class EncryptedSSMError(Exception):
    """Root exception for all encryptedssm errors."""


class ConfigurationError(EncryptedSSMError):
    """Provider configuration is invalid or the AWS session cannot be built."""


class DocumentError(EncryptedSSMError):
    """Raised when a parameter document cannot be loaded or validated."""


class StateError(EncryptedSSMError):
    """Raised when the state file cannot be read or written."""


# ── Ciphertext ────────────────────────────────────────────────────────
class MalformedCiphertextError(EncryptedSSMError):
    """The declared encrypted value is not valid base64 (or decrypts to non-text)."""


class DecryptionError(EncryptedSSMError):
    """KMS refused or failed to decrypt the declared ciphertext."""

    def __init__(self, key_id: str, cause: BaseException) -> None:
        self.key_id = key_id
        self.cause = cause
        self.code = ""
        if isinstance(cause, ClientError):
            self.code = cause.response.get("Error", {}).get("Code", "")
        super().__init__(f"Error decrypting with KMS: {cause}")


# ── Retry ─────────────────────────────────────────────────────────────
class RetryTimeoutError(EncryptedSSMError):
    """The bounded retry window elapsed while the operation was still failing."""

    def __init__(self, timeout: float, last_error: BaseException) -> None:
        self.timeout = timeout
        self.last_error = last_error
        super().__init__(f"timeout after {timeout:g}s, last error: {last_error}")


# ── Parameter operations ──────────────────────────────────────────────
class ParameterOperationError(EncryptedSSMError):
    """Base exception for a failed SSM API call against one parameter."""

    action = "operating on"

    def __init__(self, identifier: str, operation: str, cause: BaseException) -> None:
        self.identifier = identifier
        self.operation = operation
        self.cause = cause
        super().__init__(
            f"error {self.action} SSM Parameter ({identifier}) [{operation}]: {cause}"
        )


class ParameterWriteError(ParameterOperationError):
    """PutParameter failed."""

    action = "writing"


class ParameterReadError(ParameterOperationError):
    """Reading the parameter, its metadata or its tags failed."""

    action = "reading"


class ParameterDeleteError(ParameterOperationError):
    """DeleteParameter failed (including when the parameter is already gone)."""

    action = "deleting"


class TagUpdateError(ParameterOperationError):
    """Adding or removing tags failed after the value itself was written."""

    action = "updating tags of"
