"""
Unit tests for the chunked upload engine.

Tests cover:
- Progress reporting
- Retry of transient chunk failures
- UploadIncompleteError when retries run out
- Resuming a partially uploaded transaction
"""

import pytest

from sdk.arfs_sdk.errors import LedgerConnectionError, UploadIncompleteError
from sdk.arfs_sdk.ledger.base import CHUNK_SIZE
from sdk.arfs_sdk.ledger.memory import InMemoryLedger
from sdk.arfs_sdk.upload import (
    UploadState,
    drive_upload,
    send_chunked_upload_with_progress,
    upload_data_chunk,
)
from tests.factories import FakeWallet


@pytest.fixture
def wallet():
    return FakeWallet()


@pytest.fixture
def ledger(wallet):
    ledger = InMemoryLedger()
    ledger.fund(wallet.address, 10**12)
    return ledger


async def signed_tx(ledger, wallet, size):
    tx = await ledger.create_transaction(b"x" * size, wallet)
    await ledger.sign(tx, wallet)
    return tx


class TestSendChunkedUpload:
    """Tests for send_chunked_upload_with_progress."""

    @pytest.mark.asyncio
    async def test_uploads_all_chunks(self, ledger, wallet):
        tx = await signed_tx(ledger, wallet, CHUNK_SIZE * 2 + 1)
        updates = []

        final = await send_chunked_upload_with_progress(ledger, tx, updates.append, retry_delay=0)

        assert final.state is UploadState.COMPLETE
        assert final.total_chunks == 3
        assert [u.pct_complete for u in updates] == [0, 33, 66, 100]
        assert updates[0].state is UploadState.UPLOADING
        assert await ledger.get_data(tx.id) == tx.data

    @pytest.mark.asyncio
    async def test_empty_payload_is_one_chunk(self, ledger, wallet):
        tx = await signed_tx(ledger, wallet, 0)
        final = await send_chunked_upload_with_progress(ledger, tx, retry_delay=0)
        assert final.total_chunks == 1
        assert await ledger.get_data(tx.id) == b""

    @pytest.mark.asyncio
    async def test_transient_failure_retried(self, ledger, wallet):
        tx = await signed_tx(ledger, wallet, 10)
        ledger.inject_failure("chunk", LedgerConnectionError("reset"), times=2)

        final = await send_chunked_upload_with_progress(ledger, tx, max_retries=2, retry_delay=0)

        assert final.state is UploadState.COMPLETE

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise(self, ledger, wallet):
        tx = await signed_tx(ledger, wallet, 10)
        ledger.inject_failure("chunk", LedgerConnectionError("reset"), times=3)

        with pytest.raises(UploadIncompleteError) as exc_info:
            await send_chunked_upload_with_progress(ledger, tx, max_retries=2, retry_delay=0)

        assert exc_info.value.tx_id == tx.id
        assert exc_info.value.uploaded_chunks == 0
        assert ledger.get_record_count() == 0

    @pytest.mark.asyncio
    async def test_no_retry_limit(self, ledger, wallet):
        tx = await signed_tx(ledger, wallet, 10)
        ledger.inject_failure("chunk", LedgerConnectionError("reset"), times=20)

        final = await send_chunked_upload_with_progress(ledger, tx, max_retries=None, retry_delay=0)

        assert final.state is UploadState.COMPLETE
        assert await ledger.get_data(tx.id) == tx.data

    @pytest.mark.asyncio
    async def test_non_ledger_errors_propagate(self, ledger, wallet):
        tx = await signed_tx(ledger, wallet, 10)
        ledger.inject_failure("header", RuntimeError("bug"))
        with pytest.raises(RuntimeError):
            await send_chunked_upload_with_progress(ledger, tx, retry_delay=0)


class TestResume:
    @pytest.mark.asyncio
    async def test_resume_after_failure(self, ledger, wallet):
        tx = await signed_tx(ledger, wallet, CHUNK_SIZE + 1)
        uploader = await ledger.get_uploader(tx)
        ledger.inject_failure("chunk", LedgerConnectionError("reset"), times=1)

        with pytest.raises(UploadIncompleteError):
            await drive_upload(uploader, max_retries=0, retry_delay=0)
        assert uploader.header_posted
        assert not uploader.is_complete

        final = await drive_upload(uploader, max_retries=0, retry_delay=0)
        assert final.state is UploadState.COMPLETE
        assert await ledger.get_data(tx.id) == tx.data

    @pytest.mark.asyncio
    async def test_complete_upload_is_noop(self, ledger, wallet):
        tx = await signed_tx(ledger, wallet, 10)
        uploader = await ledger.get_uploader(tx)
        await drive_upload(uploader, retry_delay=0)
        updates = []

        final = await drive_upload(uploader, updates.append, retry_delay=0)

        assert final.state is UploadState.COMPLETE
        assert updates == []

    @pytest.mark.asyncio
    async def test_upload_data_chunk_returns_none_when_exhausted(self, ledger, wallet):
        tx = await signed_tx(ledger, wallet, 10)
        uploader = await ledger.get_uploader(tx)
        ledger.inject_failure("header", LedgerConnectionError("down"), times=2)
        assert await upload_data_chunk(uploader, max_retries=1, retry_delay=0) is None
