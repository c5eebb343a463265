"""
Application facade for the ArFS SDK.

ArDriveAnonymous wraps the public reads. ArDrive adds every write, pays the
community tip on file uploads, and refuses to submit anything the wallet
cannot afford. Every write returns an ArFSResult describing the created
entities, tips and fees.

Example:
    >>> ardrive = ArDrive(wallet, InMemoryLedger(), ArDriveCommunityOracle(contract_oracle))
    >>> result = await ardrive.create_public_drive("Photos")
    >>> print(json.dumps(result.to_dict()))

Invariants:
    - Balance is checked against the full estimated cost before any submission
    - The tip is at least MINIMUM_TIP_WINSTON and goes to one token holder
    - Keys appear in results only for private entities, base64url encoded
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .community import ArDriveCommunityOracle
from .config import Settings
from .crypto import b64url_encode, derive_drive_key, entity_id_bytes
from .dao import (
    NO_REWARD_SETTINGS,
    ArFSDAO,
    ArFSDAOAnonymous,
    ArFSFileToUpload,
    PreparedBundledDrive,
    PreparedDrive,
    PreparedFile,
    PreparedMove,
    new_entity_id,
)
from .entities import (
    ArFSFileOrFolderWithPaths,
    ArFSPrivateDrive,
    ArFSPrivateFile,
    ArFSPrivateFolder,
    ArFSPublicDrive,
    ArFSPublicFile,
    ArFSPublicFolder,
)
from .errors import InsufficientFundsError
from .ledger.base import LedgerGateway, Transaction, Wallet
from .types import (
    TIP_TYPE_DATA_UPLOAD,
    ArweaveAddress,
    DriveID,
    EntityType,
    FileID,
    FolderID,
    RewardSettings,
    TagName,
    TransactionID,
    Winston,
)
from .upload import ProgressCallback

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArFSEntityData:
    """One entity created or changed by a write.

    Attributes:
        type: drive, folder or file
        metadata_tx_id: Transaction (or data item) holding the metadata
        entity_id: ID of the entity
        data_tx_id: Transaction holding file data, files only
        key: Drive key (drives, folders) or file key (files), private only
        bundled_in: Bundle transaction, bundled writes only
    """

    type: EntityType
    metadata_tx_id: TransactionID
    entity_id: str
    data_tx_id: Optional[TransactionID] = None
    key: Optional[bytes] = field(default=None, repr=False)
    bundled_in: Optional[TransactionID] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "type": self.type.value,
            "metadataTxId": self.metadata_tx_id,
            "entityId": self.entity_id,
        }
        if self.data_tx_id is not None:
            result["dataTxId"] = self.data_tx_id
        if self.key is not None:
            result["key"] = b64url_encode(self.key)
        if self.bundled_in is not None:
            result["bundledIn"] = self.bundled_in
        return result


@dataclass(frozen=True)
class ArFSTipData:
    tx_id: TransactionID
    recipient: ArweaveAddress
    winston: Winston

    def to_dict(self) -> Dict[str, Any]:
        return {"txId": self.tx_id, "recipient": self.recipient, "winston": str(self.winston)}


@dataclass(frozen=True)
class ArFSResult:
    """Outcome of a write.

    Attributes:
        created: Entities created or changed
        tips: Community tips paid
        fees: Network fee per submitted transaction, in winston
    """

    created: List[ArFSEntityData] = field(default_factory=list)
    tips: List[ArFSTipData] = field(default_factory=list)
    fees: Dict[TransactionID, Winston] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created": [entity.to_dict() for entity in self.created],
            "tips": [tip.to_dict() for tip in self.tips],
            "fees": {tx_id: str(winston) for tx_id, winston in self.fees.items()},
        }


class TxStatus(Enum):
    PENDING = "pending"
    NOT_FOUND = "not_found"
    CONFIRMING = "confirming"
    MINED = "mined"


@dataclass(frozen=True)
class ArFSTransactionStatus:
    tx_id: TransactionID
    status: TxStatus
    block_height: Optional[int] = None
    number_of_confirmations: int = 0


class ArDriveAnonymous:
    """Public reads.

    Attributes:
        dao: Data access object used for every read
    """

    def __init__(self, dao: ArFSDAOAnonymous) -> None:
        self.dao = dao

    @classmethod
    def from_gateway(cls, gateway: LedgerGateway, settings: Settings | None = None) -> ArDriveAnonymous:
        return cls(ArFSDAOAnonymous(gateway, settings))

    async def get_public_drive(self, drive_id: DriveID) -> ArFSPublicDrive:
        return await self.dao.get_public_drive(drive_id)

    async def get_public_folder(self, folder_id: FolderID) -> ArFSPublicFolder:
        return await self.dao.get_public_folder(folder_id)

    async def get_public_file(self, file_id: FileID) -> ArFSPublicFile:
        return await self.dao.get_public_file(file_id)

    async def list_public_folder(self, folder_id: FolderID) -> List[ArFSFileOrFolderWithPaths]:
        return await self.dao.list_public_folder(folder_id)

    async def get_public_file_data(self, file_id: FileID) -> bytes:
        return await self.dao.get_public_file_data(file_id)


class ArDrive(ArDriveAnonymous):
    """Writes with balance checks, tips and uniform results.

    Attributes:
        wallet: Signing wallet
        community_oracle: Tip amount and recipient source
    """

    dao: ArFSDAO

    def __init__(
        self,
        wallet: Wallet,
        gateway: LedgerGateway,
        community_oracle: ArDriveCommunityOracle,
        settings: Settings | None = None,
        dry_run: Optional[bool] = None,
    ) -> None:
        super().__init__(ArFSDAO(wallet, gateway, settings, dry_run))
        self.wallet = wallet
        self.community_oracle = community_oracle

    @property
    def gateway(self) -> LedgerGateway:
        return self.dao.gateway

    @property
    def settings(self) -> Settings:
        return self.dao.settings

    # Keys

    async def derive_drive_key(self, drive_id: DriveID, password: str) -> bytes:
        """Drive key from the wallet's signature over the drive ID and the password."""
        signature = await self.wallet.sign(entity_id_bytes(drive_id))
        return derive_drive_key(password, signature)

    # Cost checks

    async def assert_wallet_balance(self, required: Winston) -> None:
        """Raise InsufficientFundsError if the wallet holds less than required."""
        address = self.wallet.address
        balance = await self.gateway.get_balance(address)
        if balance < required:
            logger.warning(
                "Insufficient balance",
                extra={"address": address, "balance": balance, "required": required},
            )
            raise InsufficientFundsError(address, balance, required)

    @staticmethod
    def _total_cost(transactions: Sequence[Transaction]) -> Winston:
        return sum(tx.reward + tx.quantity for tx in transactions)

    # Folders

    async def create_public_folder(
        self,
        name: str,
        drive_id: DriveID,
        parent_folder_id: Optional[FolderID] = None,
        reward_settings: RewardSettings = NO_REWARD_SETTINGS,
    ) -> ArFSResult:
        prepared = await self.dao.prepare_public_folder(name, drive_id, parent_folder_id, reward_settings)
        await self.assert_wallet_balance(prepared.transaction.reward)
        await self.dao.submit_transaction("folder", prepared.folder_id, prepared.transaction)
        return ArFSResult(
            created=[ArFSEntityData(EntityType.FOLDER, prepared.transaction.id, prepared.folder_id)],
            fees={prepared.transaction.id: prepared.transaction.reward},
        )

    async def create_private_folder(
        self,
        name: str,
        drive_id: DriveID,
        drive_key: bytes,
        parent_folder_id: Optional[FolderID] = None,
        reward_settings: RewardSettings = NO_REWARD_SETTINGS,
    ) -> ArFSResult:
        prepared = await self.dao.prepare_private_folder(
            name, drive_id, drive_key, parent_folder_id, reward_settings
        )
        await self.assert_wallet_balance(prepared.transaction.reward)
        await self.dao.submit_transaction("folder", prepared.folder_id, prepared.transaction)
        return ArFSResult(
            created=[
                ArFSEntityData(EntityType.FOLDER, prepared.transaction.id, prepared.folder_id, key=drive_key)
            ],
            fees={prepared.transaction.id: prepared.transaction.reward},
        )

    # Drives

    async def create_public_drive(
        self,
        name: str,
        bundle: bool = False,
        drive_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        root_folder_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
    ) -> ArFSResult:
        """Create a public drive and its root folder.

        With bundle=True both records travel in one bundle transaction and
        drive_reward_settings applies to the bundle.

        Raises:
            InsufficientFundsError: If the wallet cannot pay, before any submission
            WriteStepError: If a submission fails
        """
        if bundle:
            prepared_bundle = await self.dao.prepare_public_bundled_drive(name, drive_reward_settings)
            return await self._submit_bundled_drive(prepared_bundle)
        prepared = await self.dao.prepare_public_drive(
            name, drive_reward_settings, root_folder_reward_settings
        )
        return await self._submit_drive(prepared)

    async def create_private_drive(
        self,
        name: str,
        password: str,
        bundle: bool = False,
        drive_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        root_folder_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
    ) -> ArFSResult:
        """Create a private drive; its key is derived from the password."""
        drive_id = new_entity_id()
        drive_key = await self.derive_drive_key(drive_id, password)
        if bundle:
            prepared_bundle = await self.dao.prepare_private_bundled_drive(
                name, drive_key, drive_id, drive_reward_settings
            )
            return await self._submit_bundled_drive(prepared_bundle)
        prepared = await self.dao.prepare_private_drive(
            name, drive_key, drive_id, drive_reward_settings, root_folder_reward_settings
        )
        return await self._submit_drive(prepared)

    async def _submit_drive(self, prepared: PreparedDrive) -> ArFSResult:
        root_tx, drive_tx = prepared.root_folder_transaction, prepared.drive_transaction
        await self.assert_wallet_balance(self._total_cost([root_tx, drive_tx]))
        await self.dao.submit_drive(prepared)
        return ArFSResult(
            created=[
                ArFSEntityData(EntityType.DRIVE, drive_tx.id, prepared.drive_id, key=prepared.drive_key),
                ArFSEntityData(EntityType.FOLDER, root_tx.id, prepared.root_folder_id, key=prepared.drive_key),
            ],
            fees={drive_tx.id: drive_tx.reward, root_tx.id: root_tx.reward},
        )

    async def _submit_bundled_drive(self, prepared: PreparedBundledDrive) -> ArFSResult:
        bundle_tx = prepared.bundle_transaction
        await self.assert_wallet_balance(self._total_cost([bundle_tx]))
        await self.dao.submit_bundled_drive(prepared)
        return ArFSResult(
            created=[
                ArFSEntityData(
                    EntityType.DRIVE,
                    prepared.drive_data_item.id,
                    prepared.drive_id,
                    key=prepared.drive_key,
                    bundled_in=bundle_tx.id,
                ),
                ArFSEntityData(
                    EntityType.FOLDER,
                    prepared.root_folder_data_item.id,
                    prepared.root_folder_id,
                    key=prepared.drive_key,
                    bundled_in=bundle_tx.id,
                ),
            ],
            fees={bundle_tx.id: bundle_tx.reward},
        )

    # Files

    async def prepare_tip_transaction(self, data_reward: Winston) -> tuple[Transaction, ArweaveAddress, Winston]:
        """Sign a tip transfer for an upload whose data costs data_reward.

        Raises:
            SelectionError: If no token holder can be selected
        """
        tip = await self.community_oracle.get_community_winston_tip(data_reward)
        recipient = await self.community_oracle.select_token_holder()
        transaction = await self.gateway.create_transaction(
            b"", self.wallet, target=recipient, quantity=tip
        )
        transaction.add_tag(TagName.APP_NAME, self.settings.app_name)
        transaction.add_tag(TagName.APP_VERSION, self.settings.app_version)
        transaction.add_tag(TagName.TIP_TYPE, TIP_TYPE_DATA_UPLOAD)
        await self.gateway.sign(transaction, self.wallet)
        return transaction, recipient, tip

    async def _submit_file(
        self,
        prepared: PreparedFile,
        on_progress: Optional[ProgressCallback],
    ) -> ArFSResult:
        data_tx, metadata_tx = prepared.data_transaction, prepared.metadata_transaction
        tip_tx, recipient, tip = await self.prepare_tip_transaction(data_tx.reward)
        await self.assert_wallet_balance(self._total_cost([data_tx, metadata_tx, tip_tx]))
        await self.dao.submit_file(prepared, {"tip": tip_tx}, on_progress)
        logger.info(
            "File uploaded",
            extra={"file_id": prepared.file_id, "data_tx_id": data_tx.id, "tip_recipient": recipient},
        )
        return ArFSResult(
            created=[
                ArFSEntityData(
                    EntityType.FILE,
                    metadata_tx.id,
                    prepared.file_id,
                    data_tx_id=data_tx.id,
                    key=prepared.file_key,
                )
            ],
            tips=[ArFSTipData(tip_tx.id, recipient, tip)],
            fees={data_tx.id: data_tx.reward, metadata_tx.id: metadata_tx.reward, tip_tx.id: tip_tx.reward},
        )

    async def upload_public_file(
        self,
        parent_folder_id: FolderID,
        file: ArFSFileToUpload,
        dest_file_name: Optional[str] = None,
        data_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        metadata_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ArFSResult:
        """Upload a public file with its community tip.

        Raises:
            NotFoundError: If the parent folder does not exist
            InsufficientFundsError: If the wallet cannot pay, before any submission
            WriteStepError: Naming the failed steps among data, metadata, tip
        """
        drive_id = await self.dao.get_drive_id_for_folder_id(parent_folder_id)
        prepared = await self.dao.prepare_public_file_transactions(
            parent_folder_id,
            file,
            drive_id,
            data_reward_settings,
            metadata_reward_settings,
            dest_file_name,
        )
        return await self._submit_file(prepared, on_progress)

    async def upload_private_file(
        self,
        parent_folder_id: FolderID,
        file: ArFSFileToUpload,
        drive_key: bytes,
        dest_file_name: Optional[str] = None,
        data_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        metadata_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ArFSResult:
        drive_id = await self.dao.get_drive_id_for_folder_id(parent_folder_id)
        prepared = await self.dao.prepare_private_file_transactions(
            parent_folder_id,
            file,
            drive_id,
            drive_key,
            data_reward_settings,
            metadata_reward_settings,
            dest_file_name,
        )
        return await self._submit_file(prepared, on_progress)

    # Moves

    async def submit_move(self, prepared: PreparedMove) -> ArFSResult:
        await self.assert_wallet_balance(prepared.transaction.reward)
        moved = await self.dao.submit_move(prepared)
        return ArFSResult(
            created=[ArFSEntityData(prepared.entity_type, moved.metadata_tx_id, moved.entity_id, key=moved.key)],
            fees={moved.metadata_tx_id: moved.metadata_tx_reward},
        )

    async def move_public_folder(self, folder_id: FolderID, new_parent_folder_id: FolderID) -> ArFSResult:
        return await self.submit_move(await self.dao.prepare_move_public_folder(folder_id, new_parent_folder_id))

    async def move_private_folder(
        self, folder_id: FolderID, new_parent_folder_id: FolderID, drive_key: bytes
    ) -> ArFSResult:
        return await self.submit_move(
            await self.dao.prepare_move_private_folder(folder_id, new_parent_folder_id, drive_key)
        )

    async def move_public_file(self, file_id: FileID, new_parent_folder_id: FolderID) -> ArFSResult:
        return await self.submit_move(await self.dao.prepare_move_public_file(file_id, new_parent_folder_id))

    async def move_private_file(
        self, file_id: FileID, new_parent_folder_id: FolderID, drive_key: bytes
    ) -> ArFSResult:
        return await self.submit_move(
            await self.dao.prepare_move_private_file(file_id, new_parent_folder_id, drive_key)
        )

    # Private reads

    async def get_private_drive(self, drive_id: DriveID, drive_key: bytes) -> ArFSPrivateDrive:
        return await self.dao.get_private_drive(drive_id, drive_key)

    async def get_private_folder(self, folder_id: FolderID, drive_key: bytes) -> ArFSPrivateFolder:
        return await self.dao.get_private_folder(folder_id, drive_key)

    async def get_private_file(self, file_id: FileID, drive_key: bytes) -> ArFSPrivateFile:
        return await self.dao.get_private_file(file_id, drive_key)

    async def list_private_folder(self, folder_id: FolderID, drive_key: bytes) -> List[ArFSFileOrFolderWithPaths]:
        return await self.dao.list_private_folder(folder_id, drive_key)

    async def get_private_file_data(self, file_id: FileID, drive_key: bytes) -> bytes:
        return await self.dao.get_private_file_data(file_id, drive_key)

    # Status

    async def get_transaction_status(
        self,
        tx_id: TransactionID,
        confirmations: Optional[int] = None,
    ) -> ArFSTransactionStatus:
        """Classify a transaction as pending, not_found, confirming or mined.

        Args:
            tx_id: Transaction to check
            confirmations: Confirmations needed for "mined"
                (default: settings.default_confirmations)
        """
        threshold = self.settings.default_confirmations if confirmations is None else confirmations
        if tx_id in await self.gateway.get_mempool():
            return ArFSTransactionStatus(tx_id, TxStatus.PENDING)
        status = await self.gateway.get_status(tx_id)
        if status.block_height is None:
            return ArFSTransactionStatus(tx_id, TxStatus.NOT_FOUND)
        state = TxStatus.MINED if status.number_of_confirmations >= threshold else TxStatus.CONFIRMING
        return ArFSTransactionStatus(tx_id, state, status.block_height, status.number_of_confirmations)
