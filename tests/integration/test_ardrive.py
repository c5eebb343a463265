"""
Integration tests for the ArDrive facade.

Tests cover:
- Result shape of every write
- Community tips on uploads
- Balance checks before submission
- Password-derived private drives
- Transaction status classification
"""

import pytest
import pytest_asyncio

from sdk.arfs_sdk.ardrive import ArDrive, ArDriveAnonymous, TxStatus
from sdk.arfs_sdk.community import MINIMUM_TIP_WINSTON, ArDriveCommunityOracle
from sdk.arfs_sdk.dao import ArFSFileToUpload
from sdk.arfs_sdk.errors import (
    DecryptionError,
    InsufficientFundsError,
    LedgerConnectionError,
    SelectionError,
    WriteStepError,
)
from sdk.arfs_sdk.types import EntityType, GQLTag
from tests.factories import FakeWallet, StaticContractOracle


@pytest.fixture
def ardrive(wallet, ledger, community_oracle, settings):
    return ArDrive(wallet, ledger, community_oracle, settings)


@pytest_asyncio.fixture
async def public_drive(ardrive):
    result = await ardrive.create_public_drive("Photos")
    return {"drive_id": result.created[0].entity_id, "root_folder_id": result.created[1].entity_id}


class TestCreateDrive:
    """Tests for drive creation through the facade."""

    @pytest.mark.asyncio
    async def test_public_drive_result(self, ardrive):
        result = await ardrive.create_public_drive("Photos")

        assert [e.type for e in result.created] == [EntityType.DRIVE, EntityType.FOLDER]
        assert result.tips == []
        assert set(result.fees) == {e.metadata_tx_id for e in result.created}
        body = result.to_dict()
        assert body["created"][0]["type"] == "drive"
        assert "key" not in body["created"][0]
        assert all(isinstance(fee, str) for fee in body["fees"].values())

    @pytest.mark.asyncio
    async def test_bundled_drive_result(self, ardrive, ledger):
        result = await ardrive.create_public_drive("Photos", bundle=True)

        bundle_tx_id = result.created[0].bundled_in
        assert bundle_tx_id is not None
        assert all(e.bundled_in == bundle_tx_id for e in result.created)
        assert list(result.fees) == [bundle_tx_id]
        drive = await ardrive.get_public_drive(result.created[0].entity_id)
        assert drive.name == "Photos"

    @pytest.mark.asyncio
    async def test_private_drive_from_password(self, ardrive):
        result = await ardrive.create_private_drive("Vault", "correct horse")

        drive_id = result.created[0].entity_id
        key = await ardrive.derive_drive_key(drive_id, "correct horse")
        assert result.created[0].key == key
        assert result.to_dict()["created"][0]["key"]
        drive = await ardrive.get_private_drive(drive_id, key)
        assert drive.name == "Vault"

    @pytest.mark.asyncio
    async def test_wrong_password(self, ardrive):
        result = await ardrive.create_private_drive("Vault", "correct horse")
        drive_id = result.created[0].entity_id
        wrong = await ardrive.derive_drive_key(drive_id, "battery staple")
        with pytest.raises(DecryptionError):
            await ardrive.get_private_drive(drive_id, wrong)

    @pytest.mark.asyncio
    async def test_private_bundled_drive(self, ardrive):
        result = await ardrive.create_private_drive("Vault", "pw", bundle=True)
        drive_id = result.created[0].entity_id
        key = await ardrive.derive_drive_key(drive_id, "pw")
        drive = await ardrive.get_private_drive(drive_id, key)
        assert drive.root_folder_id == result.created[1].entity_id


class TestUploads:
    """Tests for file uploads with tips."""

    @pytest.mark.asyncio
    async def test_upload_pays_tip(self, ardrive, ledger, public_drive):
        result = await ardrive.upload_public_file(
            public_drive["root_folder_id"], ArFSFileToUpload(b"image bytes", "cat.png", "image/png")
        )

        assert len(result.tips) == 1
        tip = result.tips[0]
        assert tip.winston >= MINIMUM_TIP_WINSTON
        assert tip.recipient in {"holder-a", "holder-b"}
        assert await ledger.get_balance(tip.recipient) == tip.winston
        assert GQLTag("Tip-Type", "data upload") in await ledger.get_tags(tip.tx_id)
        assert len(result.fees) == 3

    @pytest.mark.asyncio
    async def test_upload_result_entity(self, ardrive, public_drive):
        result = await ardrive.upload_public_file(
            public_drive["root_folder_id"], ArFSFileToUpload(b"abc", "a.txt"), dest_file_name="renamed.txt"
        )

        created = result.created[0]
        assert created.type is EntityType.FILE
        assert created.data_tx_id is not None
        file = await ardrive.get_public_file(created.entity_id)
        assert file.name == "renamed.txt"
        assert await ardrive.get_public_file_data(created.entity_id) == b"abc"

    @pytest.mark.asyncio
    async def test_progress_reported(self, ardrive, public_drive):
        updates = []
        await ardrive.upload_public_file(
            public_drive["root_folder_id"], ArFSFileToUpload(b"abc", "a.txt"), on_progress=updates.append
        )
        assert {u.pct_complete for u in updates} >= {0, 100}

    @pytest.mark.asyncio
    async def test_tip_failure_reports_committed_uploads(self, ardrive, ledger, public_drive):
        ledger.inject_failure("post", LedgerConnectionError("gateway down"))

        with pytest.raises(WriteStepError) as exc_info:
            await ardrive.upload_public_file(public_drive["root_folder_id"], ArFSFileToUpload(b"abc", "a.txt"))

        assert exc_info.value.step == "tip"
        assert set(exc_info.value.committed) == {"data", "metadata"}
        assert await ledger.get_balance("holder-a") == await ledger.get_balance("holder-b") == 0

    @pytest.mark.asyncio
    async def test_insufficient_balance_rejected_before_submission(
        self, ledger, community_oracle, settings, public_drive
    ):
        poor = FakeWallet(address="poor-wallet", secret=b"poor")
        ledger.fund(poor.address, 1)
        ardrive = ArDrive(poor, ledger, community_oracle, settings)
        count = ledger.get_record_count()

        with pytest.raises(InsufficientFundsError) as exc_info:
            await ardrive.upload_public_file(public_drive["root_folder_id"], ArFSFileToUpload(b"abc", "a.txt"))

        assert exc_info.value.balance == 1
        assert exc_info.value.required > MINIMUM_TIP_WINSTON
        assert ledger.get_record_count() == count
        assert await ledger.get_balance(poor.address) == 1

    @pytest.mark.asyncio
    async def test_no_holder_rejected_before_submission(self, wallet, ledger, settings, public_drive):
        oracle = ArDriveCommunityOracle(StaticContractOracle({"settings": [["fee", 15]], "balances": {}}))
        ardrive = ArDrive(wallet, ledger, oracle, settings)
        count = ledger.get_record_count()

        with pytest.raises(SelectionError):
            await ardrive.upload_public_file(public_drive["root_folder_id"], ArFSFileToUpload(b"abc", "a.txt"))

        assert ledger.get_record_count() == count

    @pytest.mark.asyncio
    async def test_private_upload_round_trip(self, ardrive):
        result = await ardrive.create_private_drive("Vault", "pw")
        drive_id, root_folder_id = result.created[0].entity_id, result.created[1].entity_id
        key = await ardrive.derive_drive_key(drive_id, "pw")

        upload = await ardrive.upload_private_file(root_folder_id, ArFSFileToUpload(b"secret", "s.txt"), key)

        file_id = upload.created[0].entity_id
        assert upload.created[0].key is not None
        assert upload.created[0].key != key
        assert await ardrive.get_private_file_data(file_id, key) == b"secret"
        listing = await ardrive.list_private_folder(root_folder_id, key)
        assert {entry.path for entry in listing} == {"/", "/s.txt"}


class TestFoldersAndMoves:
    @pytest.mark.asyncio
    async def test_create_folder_and_move_file(self, ardrive, public_drive):
        folder = await ardrive.create_public_folder("Docs", public_drive["drive_id"])
        folder_id = folder.created[0].entity_id
        upload = await ardrive.upload_public_file(public_drive["root_folder_id"], ArFSFileToUpload(b"x", "x.txt"))
        file_id = upload.created[0].entity_id

        moved = await ardrive.move_public_file(file_id, folder_id)

        assert moved.created[0].entity_id == file_id
        listing = await ardrive.list_public_folder(public_drive["root_folder_id"])
        assert {entry.path for entry in listing} == {"/", "/Docs/", "/Docs/x.txt"}

    @pytest.mark.asyncio
    async def test_private_folder_carries_key(self, ardrive):
        result = await ardrive.create_private_drive("Vault", "pw")
        drive_id = result.created[0].entity_id
        key = await ardrive.derive_drive_key(drive_id, "pw")

        folder = await ardrive.create_private_folder("Inner", drive_id, key)

        assert folder.created[0].key == key
        assert (await ardrive.get_private_folder(folder.created[0].entity_id, key)).name == "Inner"


class TestTransactionStatus:
    """Tests for get_transaction_status."""

    @pytest.mark.asyncio
    async def test_lifecycle(self, ardrive, ledger, public_drive):
        folder = await ardrive.create_public_folder("Docs", public_drive["drive_id"])
        tx_id = folder.created[0].metadata_tx_id

        assert (await ardrive.get_transaction_status(tx_id)).status is TxStatus.PENDING

        ledger.mine()
        confirming = await ardrive.get_transaction_status(tx_id)
        assert confirming.status is TxStatus.CONFIRMING
        assert confirming.block_height == 1

        ledger.mine(blocks=20)
        assert (await ardrive.get_transaction_status(tx_id)).status is TxStatus.MINED

    @pytest.mark.asyncio
    async def test_custom_threshold(self, ardrive, ledger, public_drive):
        folder = await ardrive.create_public_folder("Docs", public_drive["drive_id"])
        ledger.mine(blocks=3)
        status = await ardrive.get_transaction_status(folder.created[0].metadata_tx_id, confirmations=2)
        assert status.status is TxStatus.MINED

    @pytest.mark.asyncio
    async def test_unknown(self, ardrive):
        assert (await ardrive.get_transaction_status("missing")).status is TxStatus.NOT_FOUND


class TestDryRunAndAnonymous:
    @pytest.mark.asyncio
    async def test_dry_run_submits_nothing(self, wallet, ledger, community_oracle, settings):
        ardrive = ArDrive(wallet, ledger, community_oracle, settings, dry_run=True)
        balance = await ledger.get_balance(wallet.address)

        result = await ardrive.create_public_drive("Dry")

        assert len(result.created) == 2
        assert ledger.get_record_count() == 0
        assert await ledger.get_balance(wallet.address) == balance

    @pytest.mark.asyncio
    async def test_anonymous_listing(self, ledger, settings, public_drive):
        anonymous = ArDriveAnonymous.from_gateway(ledger, settings)
        listing = await anonymous.list_public_folder(public_drive["root_folder_id"])
        assert {entry.path for entry in listing} == {"/"}
