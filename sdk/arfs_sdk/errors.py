"""
Error types for the ArFS SDK.

This module defines all exception types raised by the SDK:
- ArFSError: Base exception
- NotFoundError: Entity has no ledger records (or wrong privacy filter)
- ConsistencyError: Parent/drive relationship does not hold
- DecryptionError: Wrong or malformed key
- ValidationError: Protected tag collision or invalid input
- InsufficientFundsError: Wallet cannot pay the estimated total
- SelectionError: Tip recipient table is empty
- UploadIncompleteError: Chunked upload stopped before completion
- HierarchyUsageError: Path query on a scoped subtree
- WriteStepError: One step of a multi-step write failed
- LedgerError / LedgerConnectionError: Transport failures

Invariants:
    - All errors inherit from ArFSError
    - Errors carry the offending identifier in details
    - Partial writes are reported, never rolled back or retried here
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class ArFSError(Exception):
    """Base exception for all ArFS SDK errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "ARFS_ERROR"
        self.details = details or {}


class NotFoundError(ArFSError):
    """Entity not found.

    Raised when:
    - The queried entity has zero ledger records
    - The records found do not match the requested privacy
    """

    def __init__(
        self,
        message: str,
        entity_type: str,
        entity_id: str,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={"entity_type": entity_type, "entity_id": entity_id},
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class ConsistencyError(ArFSError):
    """Entity relationships are inconsistent.

    Raised when:
    - A parent folder belongs to a different drive than the one stated
    - A folder would be moved into its own subtree
    """

    def __init__(
        self,
        message: str,
        entity_id: str,
        expected_drive_id: Optional[str] = None,
        actual_drive_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="CONSISTENCY_ERROR",
            details={
                "entity_id": entity_id,
                "expected_drive_id": expected_drive_id,
                "actual_drive_id": actual_drive_id,
            },
        )
        self.entity_id = entity_id
        self.expected_drive_id = expected_drive_id
        self.actual_drive_id = actual_drive_id


class DecryptionError(ArFSError):
    """Private payload could not be decrypted."""

    def __init__(self, message: str, entity_id: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="DECRYPTION_ERROR",
            details={"entity_id": entity_id},
        )
        self.entity_id = entity_id


class ValidationError(ArFSError):
    """Input validation failed.

    Raised when:
    - A caller-supplied tag collides with a protocol tag
    - A value is missing or malformed
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        errors: Optional[List[str]] = None,
        code: str = "VALIDATION_ERROR",
    ) -> None:
        super().__init__(
            message,
            code=code,
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class InsufficientFundsError(ValidationError):
    """Wallet balance is below the estimated total cost."""

    def __init__(self, address: str, balance: int, required: int) -> None:
        super().__init__(
            f"Insufficient balance for {address}: {balance} winston available, {required} required",
            field_name="balance",
            code="INSUFFICIENT_FUNDS",
        )
        self.details.update({"address": address, "balance": balance, "required": required})
        self.address = address
        self.balance = balance
        self.required = required


class SelectionError(ArFSError):
    """No tip recipient could be selected."""

    def __init__(self, message: str, holder_count: int = 0) -> None:
        super().__init__(
            message,
            code="SELECTION_ERROR",
            details={"holder_count": holder_count},
        )
        self.holder_count = holder_count


class UploadIncompleteError(ArFSError):
    """Chunked upload stopped before every chunk was accepted."""

    def __init__(
        self,
        tx_id: str,
        uploaded_chunks: int,
        total_chunks: int,
    ) -> None:
        super().__init__(
            f"Upload of {tx_id} stopped at {uploaded_chunks}/{total_chunks} chunks",
            code="UPLOAD_INCOMPLETE",
            details={
                "tx_id": tx_id,
                "uploaded_chunks": uploaded_chunks,
                "total_chunks": total_chunks,
            },
        )
        self.tx_id = tx_id
        self.uploaded_chunks = uploaded_chunks
        self.total_chunks = total_chunks


class HierarchyUsageError(ArFSError):
    """Operation not valid for this folder hierarchy view."""

    def __init__(self, message: str, folder_id: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="HIERARCHY_USAGE",
            details={"folder_id": folder_id},
        )
        self.folder_id = folder_id


class WriteStepError(ArFSError):
    """One step of a multi-step write failed.

    Earlier or concurrent steps may already be committed. The caller can
    retry only the failed step, since entity IDs are chosen up front.

    Attributes:
        step: Name of the failed step (e.g. "data", "metadata", "tip", "drive")
        entity_id: Entity the write was for
        committed: Transaction IDs already submitted, by step name
    """

    def __init__(
        self,
        step: str,
        entity_id: str,
        cause: BaseException,
        committed: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(
            f"Write step '{step}' failed for entity {entity_id}: {cause}",
            code="WRITE_STEP_FAILED",
            details={
                "step": step,
                "entity_id": entity_id,
                "committed": dict(committed or {}),
            },
        )
        self.step = step
        self.entity_id = entity_id
        self.cause = cause
        self.committed = dict(committed or {})


class LedgerError(ArFSError):
    """Ledger gateway returned an error."""

    def __init__(
        self,
        message: str,
        code: str = "LEDGER_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code, details=details)


class LedgerConnectionError(LedgerError):
    """Failed to reach the ledger gateway."""

    def __init__(self, message: str, url: Optional[str] = None) -> None:
        super().__init__(message, code="CONNECTION_ERROR", details={"url": url})
        self.url = url
