"""
Chunked upload engine.

Drives a ChunkUploader to completion: header first, then every data chunk
in order, reporting progress after each step.

State machine:
    pending -> uploading -> complete

Invariants:
    - Chunk steps of one transaction run sequentially
    - A failed step is retried in place by calling the same step again,
      up to max_retries times (max_retries=None retries until it succeeds)
    - There is no failed state. When the retry step reports no further
      chunk, the upload stops in the uploading state and
      UploadIncompleteError is raised; drive_upload() on the same uploader
      resumes it
    - Uploading an already complete transaction is a no-op

How to change safely:
    - Progress callbacks run inline; keep them cheap
    - Only LedgerError (including LedgerConnectionError) is retried;
      anything else propagates
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .errors import LedgerError, UploadIncompleteError
from .ledger.base import ChunkUploader, LedgerGateway, Transaction

logger = logging.getLogger(__name__)


class UploadState(Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETE = "complete"


@dataclass(frozen=True)
class UploadProgress:
    """Progress snapshot passed to callbacks.

    Attributes:
        tx_id: Transaction being uploaded
        state: Current state
        pct_complete: Integer percentage of chunks uploaded
        uploaded_chunks: Chunks accepted so far
        total_chunks: Chunks in the transaction
    """

    tx_id: str
    state: UploadState
    pct_complete: int
    uploaded_chunks: int
    total_chunks: int

    @classmethod
    def of(cls, uploader: ChunkUploader) -> UploadProgress:
        if uploader.is_complete:
            state = UploadState.COMPLETE
        elif uploader.header_posted:
            state = UploadState.UPLOADING
        else:
            state = UploadState.PENDING
        return cls(
            tx_id=uploader.transaction.id,
            state=state,
            pct_complete=uploader.pct_complete,
            uploaded_chunks=uploader.uploaded_chunks,
            total_chunks=uploader.total_chunks,
        )


ProgressCallback = Callable[[UploadProgress], None]


async def upload_data_chunk(
    uploader: ChunkUploader,
    max_retries: Optional[int] = 5,
    retry_delay: float = 1.0,
) -> Optional[ChunkUploader]:
    """Push the next step of an upload, retrying transient failures.

    Args:
        uploader: Uploader to advance
        max_retries: Attempts after the first failure; None for no limit
        retry_delay: Seconds between attempts

    Returns:
        The uploader after a successful step, or None once retries are
        exhausted
    """
    attempts = 0
    while True:
        try:
            await uploader.upload_chunk()
            return uploader
        except LedgerError as e:
            attempts += 1
            if max_retries is not None and attempts > max_retries:
                logger.error(
                    "Chunk upload failed, retries exhausted",
                    extra={"tx_id": uploader.transaction.id, "attempts": attempts, "error": str(e)},
                )
                return None
            logger.warning(
                "Chunk upload failed, retrying",
                extra={"tx_id": uploader.transaction.id, "attempt": attempts, "error": str(e)},
            )
            await asyncio.sleep(retry_delay)


async def send_chunked_upload_with_progress(
    gateway: LedgerGateway,
    transaction: Transaction,
    on_progress: Optional[ProgressCallback] = None,
    max_retries: Optional[int] = 5,
    retry_delay: float = 1.0,
) -> UploadProgress:
    """Upload a signed transaction chunk by chunk.

    Args:
        gateway: Ledger to upload to
        transaction: Signed transaction
        on_progress: Called with a progress snapshot after every step
        max_retries: Retries per step; None for no limit
        retry_delay: Seconds between retries

    Returns:
        Final progress, always in the COMPLETE state

    Raises:
        UploadIncompleteError: If a step keeps failing
    """
    uploader = await gateway.get_uploader(transaction)
    return await drive_upload(uploader, on_progress, max_retries, retry_delay)


async def drive_upload(
    uploader: ChunkUploader,
    on_progress: Optional[ProgressCallback] = None,
    max_retries: Optional[int] = 5,
    retry_delay: float = 1.0,
) -> UploadProgress:
    """Run an existing uploader to completion (resumes where it stopped)."""
    while not uploader.is_complete:
        advanced = await upload_data_chunk(uploader, max_retries, retry_delay)
        if advanced is None:
            raise UploadIncompleteError(
                tx_id=uploader.transaction.id,
                uploaded_chunks=uploader.uploaded_chunks,
                total_chunks=uploader.total_chunks,
            )
        progress = UploadProgress.of(uploader)
        logger.info(
            "Upload progress",
            extra={
                "tx_id": progress.tx_id,
                "pct_complete": progress.pct_complete,
                "uploaded_chunks": progress.uploaded_chunks,
                "total_chunks": progress.total_chunks,
            },
        )
        if on_progress is not None:
            on_progress(progress)
    return UploadProgress.of(uploader)
