"""
ArFS data access: reads, listings and multi-step writes.

ArFSDAOAnonymous reads public entities with no wallet. ArFSDAO adds private
reads and every write. Writes are split into prepare_* (build, tag and sign
records, nothing submitted) and create_*/upload_*/move_* (prepare, then
submit), so callers can inspect fees before anything reaches the ledger.

Invariants:
    - Entity IDs are chosen before anything is submitted and never change
    - Paging follows page_info.has_next_page only; builds within a page run
      concurrently
    - Caller tags never override protocol tags (ValidationError)
    - Failed submissions raise WriteStepError naming the step; committed
      steps are reported, never rolled back
    - dry_run prepares and signs but submits nothing

How to change safely:
    - New record kinds need a prototype, a builder and a prepare_* method
    - Keep base tags (App-Name, App-Version, ArFS, Boost) in one place:
      _base_tags()
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from .builders import (
    ArFSPrivateDriveBuilder,
    ArFSPrivateFileBuilder,
    ArFSPrivateFolderBuilder,
    ArFSPublicDriveBuilder,
    ArFSPublicFileBuilder,
    ArFSPublicFolderBuilder,
)
from .config import Settings
from .crypto import decrypt, derive_file_key
from .entities import (
    ArFSEntity,
    ArFSFileOrFolderEntity,
    ArFSFileOrFolderWithPaths,
    ArFSPrivateDrive,
    ArFSPrivateFile,
    ArFSPrivateFolder,
    ArFSPublicDrive,
    ArFSPublicFile,
    ArFSPublicFolder,
)
from .errors import ConsistencyError, NotFoundError, ValidationError, WriteStepError
from .filters import keep_where, latest_revisions
from .hierarchy import FolderHierarchy
from .ledger.base import (
    DataItem,
    LedgerGateway,
    LedgerNode,
    TagFilter,
    Transaction,
    Wallet,
    iter_query_pages,
)
from .prototypes import (
    ArFSPrivateDriveMetaDataPrototype,
    ArFSPrivateFileDataPrototype,
    ArFSPrivateFileMetaDataPrototype,
    ArFSPrivateFolderMetaDataPrototype,
    ArFSPublicDriveMetaDataPrototype,
    ArFSPublicFileDataPrototype,
    ArFSPublicFileMetaDataPrototype,
    ArFSPublicFolderMetaDataPrototype,
    ObjectPrototype,
)
from .tx_data import (
    ArFSPrivateDriveTransactionData,
    ArFSPrivateFileDataTransactionData,
    ArFSPrivateFileMetadataTransactionData,
    ArFSPrivateFolderTransactionData,
    ArFSPublicDriveTransactionData,
    ArFSPublicFileDataTransactionData,
    ArFSPublicFileMetadataTransactionData,
    ArFSPublicFolderTransactionData,
)
from .types import (
    CURRENT_ARFS_VERSION,
    DriveID,
    EntityType,
    FileID,
    FolderID,
    GQLTag,
    RewardSettings,
    TagName,
    TransactionID,
    Winston,
)
from .upload import ProgressCallback, send_chunked_upload_with_progress

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=ArFSEntity)

NO_REWARD_SETTINGS = RewardSettings()


def _unix_time(previous: Optional[int] = None) -> int:
    """Current time in seconds, strictly after a previous revision if given."""
    now = int(time.time())
    if previous is not None and now <= previous:
        return previous + 1
    return now


def new_entity_id() -> str:
    return str(uuid.uuid4())


def assert_valid_name(name: str) -> str:
    """Return name if it can be one path segment.

    Raises:
        ValidationError: If name is empty or contains "/"
    """
    if not name or "/" in name:
        raise ValidationError(
            f"Invalid entity name {name!r}: must be non-empty and must not contain '/'",
            field_name="name",
            errors=[name],
        )
    return name


@dataclass(frozen=True)
class ArFSFileToUpload:
    """A file's bytes and the metadata written alongside them.

    Attributes:
        data: File contents
        name: Destination file name
        content_type: MIME type of the contents
        last_modified_date: Milliseconds since the epoch
    """

    data: bytes
    name: str
    content_type: str = "application/octet-stream"
    last_modified_date: int = 0

    @classmethod
    def from_path(cls, path: str | os.PathLike[str]) -> ArFSFileToUpload:
        file_path = Path(path)
        content_type, _ = mimetypes.guess_type(file_path.name)
        return cls(
            data=file_path.read_bytes(),
            name=file_path.name,
            content_type=content_type or "application/octet-stream",
            last_modified_date=int(file_path.stat().st_mtime * 1000),
        )

    @property
    def size(self) -> int:
        return len(self.data)


# Prepared writes


@dataclass(frozen=True)
class PreparedFolder:
    folder_id: FolderID
    drive_id: DriveID
    transaction: Transaction
    drive_key: Optional[bytes] = None


@dataclass(frozen=True)
class PreparedDrive:
    drive_id: DriveID
    root_folder_id: FolderID
    root_folder_transaction: Transaction
    drive_transaction: Transaction
    drive_key: Optional[bytes] = None


@dataclass(frozen=True)
class PreparedBundledDrive:
    drive_id: DriveID
    root_folder_id: FolderID
    root_folder_data_item: DataItem
    drive_data_item: DataItem
    bundle_transaction: Transaction
    drive_key: Optional[bytes] = None


@dataclass(frozen=True)
class PreparedFile:
    file_id: FileID
    drive_id: DriveID
    data_transaction: Transaction
    metadata_transaction: Transaction
    file_key: Optional[bytes] = None


@dataclass(frozen=True)
class PreparedMove:
    entity_id: str
    entity_type: EntityType
    transaction: Transaction
    key: Optional[bytes] = None


# Write results


@dataclass(frozen=True)
class ArFSCreateFolderResult:
    folder_id: FolderID
    folder_tx_id: TransactionID
    folder_tx_reward: Winston
    drive_key: Optional[bytes] = None


@dataclass(frozen=True)
class ArFSCreateDriveResult:
    drive_id: DriveID
    root_folder_id: FolderID
    drive_tx_id: TransactionID
    drive_tx_reward: Winston
    root_folder_tx_id: TransactionID
    root_folder_tx_reward: Winston
    drive_key: Optional[bytes] = None


@dataclass(frozen=True)
class ArFSCreateBundledDriveResult:
    drive_id: DriveID
    root_folder_id: FolderID
    bundle_tx_id: TransactionID
    bundle_tx_reward: Winston
    drive_data_item_id: TransactionID
    root_folder_data_item_id: TransactionID
    drive_key: Optional[bytes] = None


@dataclass(frozen=True)
class ArFSUploadFileResult:
    file_id: FileID
    data_tx_id: TransactionID
    data_tx_reward: Winston
    metadata_tx_id: TransactionID
    metadata_tx_reward: Winston
    file_key: Optional[bytes] = None


@dataclass(frozen=True)
class ArFSMoveResult:
    entity_id: str
    metadata_tx_id: TransactionID
    metadata_tx_reward: Winston
    key: Optional[bytes] = None


class ArFSDAOAnonymous:
    """Public reads that need no wallet.

    Attributes:
        gateway: Ledger to read from
        settings: SDK settings
    """

    def __init__(self, gateway: LedgerGateway, settings: Settings | None = None) -> None:
        self.gateway = gateway
        self.settings = settings or Settings()

    @property
    def page_size(self) -> int:
        return self.settings.page_size

    async def _collect(
        self,
        filters: Sequence[TagFilter],
        build: Callable[[LedgerNode], Awaitable[E]],
    ) -> List[E]:
        """Page through a query and build every node, one page at a time."""
        results: List[E] = []
        async for page in iter_query_pages(self.gateway, filters, self.page_size):
            results.extend(await asyncio.gather(*(build(edge.node) for edge in page.edges)))
        return results

    async def get_drive_id_for_folder_id(self, folder_id: FolderID) -> DriveID:
        """Drive ID of a folder, public or private.

        Raises:
            NotFoundError: If the folder has no records
        """
        page = await self.gateway.query(
            [
                TagFilter.of(TagName.FOLDER_ID, folder_id),
                TagFilter.of(TagName.ENTITY_TYPE, EntityType.FOLDER.value),
            ],
            first=1,
        )
        for edge in page.edges:
            drive_id = edge.node.tag_value(TagName.DRIVE_ID)
            if drive_id:
                return drive_id
        raise NotFoundError(
            f"Folder with Folder ID {folder_id} not found",
            entity_type=EntityType.FOLDER.value,
            entity_id=folder_id,
        )

    async def get_public_drive(self, drive_id: DriveID) -> ArFSPublicDrive:
        return await ArFSPublicDriveBuilder(drive_id, self.gateway, self.page_size).build()

    async def get_public_folder(self, folder_id: FolderID) -> ArFSPublicFolder:
        return await ArFSPublicFolderBuilder(folder_id, self.gateway, self.page_size).build()

    async def get_public_file(self, file_id: FileID) -> ArFSPublicFile:
        return await ArFSPublicFileBuilder(file_id, self.gateway, self.page_size).build()

    async def get_all_folders_of_public_drive(
        self,
        drive_id: DriveID,
        latest_revisions_only: bool = False,
    ) -> List[ArFSPublicFolder]:
        folders = await self._collect(
            [
                TagFilter.of(TagName.DRIVE_ID, drive_id),
                TagFilter.of(TagName.ENTITY_TYPE, EntityType.FOLDER.value),
            ],
            lambda node: ArFSPublicFolderBuilder(
                node.tag_value(TagName.FOLDER_ID) or "", self.gateway, self.page_size
            ).build_from_node(node),
        )
        return latest_revisions(folders) if latest_revisions_only else folders

    async def _files_with_parents(
        self,
        folder_ids: Sequence[FolderID],
        build: Callable[[LedgerNode], Awaitable[E]],
        latest_revisions_only: bool,
    ) -> List[E]:
        """Files with a record under one of folder_ids.

        With latest_revisions_only, every revision of the matching files is
        fetched by File-Id, reduced, and kept only if the winner still sits
        under one of folder_ids. A file moved away keeps an old record under
        its former parent, which must not bring it back.
        """
        if not folder_ids:
            return []
        file_filter = TagFilter.of(TagName.ENTITY_TYPE, EntityType.FILE.value)
        files = await self._collect([TagFilter.of(TagName.PARENT_FOLDER_ID, folder_ids), file_filter], build)
        if not latest_revisions_only:
            return files
        file_ids = list(dict.fromkeys(f.entity_id for f in files))
        if not file_ids:
            return []
        revisions = await self._collect([TagFilter.of(TagName.FILE_ID, file_ids), file_filter], build)
        wanted = set(folder_ids)
        return keep_where(revisions, lambda f: f.parent_folder_id in wanted)

    async def get_public_files_with_parent_folder_ids(
        self,
        folder_ids: Sequence[FolderID],
        latest_revisions_only: bool = False,
    ) -> List[ArFSPublicFile]:
        return await self._files_with_parents(
            folder_ids,
            lambda node: ArFSPublicFileBuilder(
                node.tag_value(TagName.FILE_ID) or "", self.gateway, self.page_size
            ).build_from_node(node),
            latest_revisions_only,
        )

    async def list_public_folder(self, folder_id: FolderID) -> List[ArFSFileOrFolderWithPaths]:
        """List a folder and everything below it, with drive-root paths.

        Raises:
            NotFoundError: If the folder has no records
        """
        folder = await self.get_public_folder(folder_id)
        folders = await self.get_all_folders_of_public_drive(folder.drive_id, latest_revisions_only=True)
        hierarchy = FolderHierarchy.new_from_entities(folders)
        subtree_ids = hierarchy.sub_tree_of(folder_id).all_folder_ids()
        files = await self.get_public_files_with_parent_folder_ids(subtree_ids, latest_revisions_only=True)
        return _with_paths(folders, files, subtree_ids, hierarchy)

    async def get_public_file_data(self, file_id: FileID) -> bytes:
        file = await self.get_public_file(file_id)
        return await self.gateway.get_data(file.data_tx_id)


def _with_paths(
    folders: Iterable[ArFSFileOrFolderEntity],
    files: Iterable[ArFSFileOrFolderEntity],
    subtree_ids: Sequence[FolderID],
    hierarchy: FolderHierarchy,
) -> List[ArFSFileOrFolderWithPaths]:
    in_subtree = set(subtree_ids)
    children = [f for f in folders if f.entity_id in in_subtree]
    children.extend(keep_where(files, lambda f: f.parent_folder_id in in_subtree))
    return [ArFSFileOrFolderWithPaths.from_hierarchy(entity, hierarchy) for entity in children]


class ArFSDAO(ArFSDAOAnonymous):
    """Private reads and all writes, signed by one wallet.

    Example:
        >>> dao = ArFSDAO(wallet, InMemoryLedger())
        >>> drive = await dao.create_public_drive("Photos")
        >>> await dao.upload_public_file(drive.root_folder_id, file, drive.drive_id)
    """

    def __init__(
        self,
        wallet: Wallet,
        gateway: LedgerGateway,
        settings: Settings | None = None,
        dry_run: Optional[bool] = None,
    ) -> None:
        super().__init__(gateway, settings)
        self.wallet = wallet
        self.dry_run = self.settings.dry_run if dry_run is None else dry_run

    # Record preparation

    def _base_tags(self, reward_settings: RewardSettings) -> List[GQLTag]:
        tags = [
            GQLTag(TagName.APP_NAME, self.settings.app_name),
            GQLTag(TagName.APP_VERSION, self.settings.app_version),
            GQLTag(TagName.ARFS, CURRENT_ARFS_VERSION),
        ]
        if reward_settings.is_boosted:
            tags.append(GQLTag(TagName.BOOST, reward_settings.boost_tag_value))
        return tags

    async def prepare_arfs_object_transaction(
        self,
        prototype: ObjectPrototype,
        reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        other_tags: Sequence[GQLTag] = (),
    ) -> Transaction:
        """Create, tag and sign the transaction of one record.

        Raises:
            ValidationError: If other_tags collide with protected tags
        """
        prototype.assert_protected_tags(other_tags)
        transaction = await self.gateway.create_transaction(
            prototype.object_data.as_transaction_data(),
            self.wallet,
            reward=reward_settings.reward,
        )
        transaction.reward = reward_settings.apply(transaction.reward)
        for tag in [*self._base_tags(reward_settings), *prototype.tags(), *other_tags]:
            transaction.add_tag(tag.name, tag.value)
        await self.gateway.sign(transaction, self.wallet)
        return transaction

    async def prepare_arfs_object_data_item(
        self,
        prototype: ObjectPrototype,
        other_tags: Sequence[GQLTag] = (),
    ) -> DataItem:
        """Create and sign the data item of one record, for bundling."""
        prototype.assert_protected_tags(other_tags)
        tags = [*self._base_tags(NO_REWARD_SETTINGS), *prototype.tags(), *other_tags]
        return await self.gateway.create_data_item(
            prototype.object_data.as_transaction_data(), tags, self.wallet
        )

    async def prepare_arfs_object_bundle(
        self,
        data_items: Sequence[DataItem],
        reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        other_tags: Sequence[GQLTag] = (),
    ) -> Transaction:
        """Wrap signed data items in one signed bundle transaction."""
        transaction = await self.gateway.bundle(data_items, self.wallet)
        if reward_settings.reward is not None:
            transaction.reward = reward_settings.reward
        transaction.reward = reward_settings.apply(transaction.reward)
        transaction.add_tag(TagName.APP_NAME, self.settings.app_name)
        transaction.add_tag(TagName.APP_VERSION, self.settings.app_version)
        for tag in other_tags:
            transaction.add_tag(tag.name, tag.value)
        await self.gateway.sign(transaction, self.wallet)
        return transaction

    # Submission

    async def submit_transaction(
        self,
        step: str,
        entity_id: str,
        transaction: Transaction,
        on_progress: Optional[ProgressCallback] = None,
        committed: Optional[Dict[str, TransactionID]] = None,
    ) -> None:
        """Upload one signed transaction.

        Raises:
            WriteStepError: If the upload fails
        """
        await self.submit_together({step: transaction}, entity_id, on_progress, committed)

    async def _send(self, transaction: Transaction, on_progress: Optional[ProgressCallback]) -> None:
        # Data-less transfers (tips) go in one request; everything else is chunked
        if not transaction.data:
            await self.gateway.post_transaction(transaction)
            return
        await send_chunked_upload_with_progress(
            self.gateway,
            transaction,
            on_progress,
            self.settings.max_chunk_retries,
            self.settings.chunk_retry_delay,
        )

    async def submit_together(
        self,
        steps: Dict[str, Transaction],
        entity_id: str,
        on_progress: Optional[ProgressCallback] = None,
        committed: Optional[Dict[str, TransactionID]] = None,
    ) -> None:
        """Upload several signed transactions concurrently.

        Every upload runs to its own end. If any fail, WriteStepError names the
        failed steps and lists the transactions that were committed.

        Raises:
            WriteStepError: If any upload fails
        """
        if self.dry_run:
            logger.info(
                "Dry run, skipping submission",
                extra={"entity_id": entity_id, "steps": list(steps)},
            )
            return

        names = list(steps)
        results = await asyncio.gather(
            *(self._send(steps[name], on_progress) for name in names),
            return_exceptions=True,
        )
        done = dict(committed or {})
        failures: List[tuple[str, BaseException]] = []
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                failures.append((name, result))
            else:
                done[name] = steps[name].id

        if failures:
            failed_names = ",".join(name for name, _ in failures)
            logger.error(
                "Write step failed",
                extra={"entity_id": entity_id, "failed_steps": failed_names, "committed": done},
            )
            raise WriteStepError(failed_names, entity_id, failures[0][1], committed=done)

        logger.info(
            "Transactions submitted",
            extra={"entity_id": entity_id, "tx_ids": {name: steps[name].id for name in names}},
        )

    # Folders

    async def _resolve_parent(
        self,
        drive_id: DriveID,
        parent_folder_id: Optional[FolderID],
        sync_parent_folder_id: bool,
        root_folder_of: Callable[[DriveID], Awaitable[FolderID]],
    ) -> Optional[FolderID]:
        if not sync_parent_folder_id:
            return parent_folder_id
        if parent_folder_id:
            actual_drive_id = await self.get_drive_id_for_folder_id(parent_folder_id)
            if actual_drive_id != drive_id:
                raise ConsistencyError(
                    f"Drive ID {drive_id} does not match actual drive ID {actual_drive_id} for parent folder ID",
                    entity_id=parent_folder_id,
                    expected_drive_id=drive_id,
                    actual_drive_id=actual_drive_id,
                )
            return parent_folder_id
        return await root_folder_of(drive_id)

    async def _public_root_folder_id(self, drive_id: DriveID) -> FolderID:
        return (await self.get_public_drive(drive_id)).root_folder_id

    async def prepare_public_folder(
        self,
        name: str,
        drive_id: DriveID,
        parent_folder_id: Optional[FolderID] = None,
        reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        sync_parent_folder_id: bool = True,
        other_tags: Sequence[GQLTag] = (),
    ) -> PreparedFolder:
        assert_valid_name(name)
        parent_folder_id = await self._resolve_parent(
            drive_id, parent_folder_id, sync_parent_folder_id, self._public_root_folder_id
        )
        folder_id = new_entity_id()
        prototype = ArFSPublicFolderMetaDataPrototype(
            ArFSPublicFolderTransactionData(name),
            drive_id=drive_id,
            folder_id=folder_id,
            parent_folder_id=parent_folder_id,
            unix_time=_unix_time(),
        )
        transaction = await self.prepare_arfs_object_transaction(prototype, reward_settings, other_tags)
        return PreparedFolder(folder_id=folder_id, drive_id=drive_id, transaction=transaction)

    async def create_public_folder(
        self,
        name: str,
        drive_id: DriveID,
        parent_folder_id: Optional[FolderID] = None,
        reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        sync_parent_folder_id: bool = True,
        other_tags: Sequence[GQLTag] = (),
    ) -> ArFSCreateFolderResult:
        """Create a public folder.

        With no parent given the folder goes under the drive's root folder.

        Raises:
            ConsistencyError: If the parent folder belongs to another drive
            NotFoundError: If the drive or parent folder does not exist
            WriteStepError: If the submission fails
        """
        prepared = await self.prepare_public_folder(
            name, drive_id, parent_folder_id, reward_settings, sync_parent_folder_id, other_tags
        )
        await self.submit_transaction("folder", prepared.folder_id, prepared.transaction)
        return _folder_result(prepared)

    async def create_public_folder_data_item(
        self,
        name: str,
        drive_id: DriveID,
        parent_folder_id: Optional[FolderID] = None,
        sync_parent_folder_id: bool = True,
        folder_id: Optional[FolderID] = None,
    ) -> tuple[DataItem, FolderID]:
        """Signed, unsubmitted data item of a new public folder."""
        assert_valid_name(name)
        parent_folder_id = await self._resolve_parent(
            drive_id, parent_folder_id, sync_parent_folder_id, self._public_root_folder_id
        )
        folder_id = folder_id or new_entity_id()
        prototype = ArFSPublicFolderMetaDataPrototype(
            ArFSPublicFolderTransactionData(name),
            drive_id=drive_id,
            folder_id=folder_id,
            parent_folder_id=parent_folder_id,
            unix_time=_unix_time(),
        )
        return await self.prepare_arfs_object_data_item(prototype), folder_id

    async def prepare_private_folder(
        self,
        name: str,
        drive_id: DriveID,
        drive_key: bytes,
        parent_folder_id: Optional[FolderID] = None,
        reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        sync_parent_folder_id: bool = True,
        other_tags: Sequence[GQLTag] = (),
    ) -> PreparedFolder:
        assert_valid_name(name)

        async def root_folder_of(d_id: DriveID) -> FolderID:
            return (await self.get_private_drive(d_id, drive_key)).root_folder_id

        parent_folder_id = await self._resolve_parent(
            drive_id, parent_folder_id, sync_parent_folder_id, root_folder_of
        )
        folder_id = new_entity_id()
        prototype = ArFSPrivateFolderMetaDataPrototype(
            ArFSPrivateFolderTransactionData.from_plaintext(name, drive_key),
            drive_id=drive_id,
            folder_id=folder_id,
            parent_folder_id=parent_folder_id,
            unix_time=_unix_time(),
        )
        transaction = await self.prepare_arfs_object_transaction(prototype, reward_settings, other_tags)
        return PreparedFolder(folder_id=folder_id, drive_id=drive_id, transaction=transaction, drive_key=drive_key)

    async def create_private_folder(
        self,
        name: str,
        drive_id: DriveID,
        drive_key: bytes,
        parent_folder_id: Optional[FolderID] = None,
        reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        sync_parent_folder_id: bool = True,
        other_tags: Sequence[GQLTag] = (),
    ) -> ArFSCreateFolderResult:
        """Create a private folder; see create_public_folder()."""
        prepared = await self.prepare_private_folder(
            name, drive_id, drive_key, parent_folder_id, reward_settings, sync_parent_folder_id, other_tags
        )
        await self.submit_transaction("folder", prepared.folder_id, prepared.transaction)
        return _folder_result(prepared)

    async def create_private_folder_data_item(
        self,
        name: str,
        drive_id: DriveID,
        drive_key: bytes,
        parent_folder_id: Optional[FolderID] = None,
        sync_parent_folder_id: bool = True,
        folder_id: Optional[FolderID] = None,
    ) -> tuple[DataItem, FolderID]:
        assert_valid_name(name)

        async def root_folder_of(d_id: DriveID) -> FolderID:
            return (await self.get_private_drive(d_id, drive_key)).root_folder_id

        parent_folder_id = await self._resolve_parent(
            drive_id, parent_folder_id, sync_parent_folder_id, root_folder_of
        )
        folder_id = folder_id or new_entity_id()
        prototype = ArFSPrivateFolderMetaDataPrototype(
            ArFSPrivateFolderTransactionData.from_plaintext(name, drive_key),
            drive_id=drive_id,
            folder_id=folder_id,
            parent_folder_id=parent_folder_id,
            unix_time=_unix_time(),
        )
        return await self.prepare_arfs_object_data_item(prototype), folder_id

    # Drives

    async def prepare_public_drive(
        self,
        name: str,
        drive_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        root_folder_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        drive_id: Optional[DriveID] = None,
    ) -> PreparedDrive:
        drive_id = drive_id or new_entity_id()
        root = await self.prepare_public_folder(
            name, drive_id, reward_settings=root_folder_reward_settings, sync_parent_folder_id=False
        )
        prototype = ArFSPublicDriveMetaDataPrototype(
            ArFSPublicDriveTransactionData(name, root.folder_id),
            drive_id=drive_id,
            unix_time=_unix_time(),
        )
        drive_tx = await self.prepare_arfs_object_transaction(prototype, drive_reward_settings)
        return PreparedDrive(
            drive_id=drive_id,
            root_folder_id=root.folder_id,
            root_folder_transaction=root.transaction,
            drive_transaction=drive_tx,
        )

    async def prepare_private_drive(
        self,
        name: str,
        drive_key: bytes,
        drive_id: DriveID,
        drive_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        root_folder_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
    ) -> PreparedDrive:
        """Prepare a private drive.

        The drive ID is required because the drive key is derived from it.
        """
        root = await self.prepare_private_folder(
            name,
            drive_id,
            drive_key,
            reward_settings=root_folder_reward_settings,
            sync_parent_folder_id=False,
        )
        prototype = ArFSPrivateDriveMetaDataPrototype(
            ArFSPrivateDriveTransactionData.from_plaintext(name, root.folder_id, drive_key),
            drive_id=drive_id,
            unix_time=_unix_time(),
        )
        drive_tx = await self.prepare_arfs_object_transaction(prototype, drive_reward_settings)
        return PreparedDrive(
            drive_id=drive_id,
            root_folder_id=root.folder_id,
            root_folder_transaction=root.transaction,
            drive_transaction=drive_tx,
            drive_key=drive_key,
        )

    async def submit_drive(
        self,
        prepared: PreparedDrive,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ArFSCreateDriveResult:
        """Submit the root folder, then the drive record.

        Raises:
            WriteStepError: step "root_folder" if nothing was written, or
                step "drive" with the orphaned root folder in details
        """
        await self.submit_transaction(
            "root_folder", prepared.drive_id, prepared.root_folder_transaction, on_progress
        )
        try:
            await self.submit_transaction(
                "drive",
                prepared.drive_id,
                prepared.drive_transaction,
                on_progress,
                committed={"root_folder": prepared.root_folder_transaction.id},
            )
        except WriteStepError as e:
            e.details["root_folder_id"] = prepared.root_folder_id
            raise
        return ArFSCreateDriveResult(
            drive_id=prepared.drive_id,
            root_folder_id=prepared.root_folder_id,
            drive_tx_id=prepared.drive_transaction.id,
            drive_tx_reward=prepared.drive_transaction.reward,
            root_folder_tx_id=prepared.root_folder_transaction.id,
            root_folder_tx_reward=prepared.root_folder_transaction.reward,
            drive_key=prepared.drive_key,
        )

    async def create_public_drive(
        self,
        name: str,
        drive_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        root_folder_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
    ) -> ArFSCreateDriveResult:
        prepared = await self.prepare_public_drive(name, drive_reward_settings, root_folder_reward_settings)
        return await self.submit_drive(prepared)

    async def create_private_drive(
        self,
        name: str,
        drive_key: bytes,
        drive_id: DriveID,
        drive_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        root_folder_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
    ) -> ArFSCreateDriveResult:
        prepared = await self.prepare_private_drive(
            name, drive_key, drive_id, drive_reward_settings, root_folder_reward_settings
        )
        return await self.submit_drive(prepared)

    async def prepare_public_bundled_drive(
        self,
        name: str,
        reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        drive_id: Optional[DriveID] = None,
    ) -> PreparedBundledDrive:
        drive_id = drive_id or new_entity_id()
        root_item, root_folder_id = await self.create_public_folder_data_item(
            name, drive_id, sync_parent_folder_id=False
        )
        drive_item = await self.prepare_arfs_object_data_item(
            ArFSPublicDriveMetaDataPrototype(
                ArFSPublicDriveTransactionData(name, root_folder_id),
                drive_id=drive_id,
                unix_time=_unix_time(),
            )
        )
        bundle = await self.prepare_arfs_object_bundle([root_item, drive_item], reward_settings)
        return PreparedBundledDrive(drive_id, root_folder_id, root_item, drive_item, bundle)

    async def prepare_private_bundled_drive(
        self,
        name: str,
        drive_key: bytes,
        drive_id: DriveID,
        reward_settings: RewardSettings = NO_REWARD_SETTINGS,
    ) -> PreparedBundledDrive:
        root_item, root_folder_id = await self.create_private_folder_data_item(
            name, drive_id, drive_key, sync_parent_folder_id=False
        )
        drive_item = await self.prepare_arfs_object_data_item(
            ArFSPrivateDriveMetaDataPrototype(
                ArFSPrivateDriveTransactionData.from_plaintext(name, root_folder_id, drive_key),
                drive_id=drive_id,
                unix_time=_unix_time(),
            )
        )
        bundle = await self.prepare_arfs_object_bundle([root_item, drive_item], reward_settings)
        return PreparedBundledDrive(drive_id, root_folder_id, root_item, drive_item, bundle, drive_key)

    async def submit_bundled_drive(
        self,
        prepared: PreparedBundledDrive,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ArFSCreateBundledDriveResult:
        await self.submit_transaction("bundle", prepared.drive_id, prepared.bundle_transaction, on_progress)
        return ArFSCreateBundledDriveResult(
            drive_id=prepared.drive_id,
            root_folder_id=prepared.root_folder_id,
            bundle_tx_id=prepared.bundle_transaction.id,
            bundle_tx_reward=prepared.bundle_transaction.reward,
            drive_data_item_id=prepared.drive_data_item.id,
            root_folder_data_item_id=prepared.root_folder_data_item.id,
            drive_key=prepared.drive_key,
        )

    async def create_public_bundled_drive(
        self,
        name: str,
        reward_settings: RewardSettings = NO_REWARD_SETTINGS,
    ) -> ArFSCreateBundledDriveResult:
        """Create a public drive and its root folder in one bundle transaction."""
        return await self.submit_bundled_drive(await self.prepare_public_bundled_drive(name, reward_settings))

    async def create_private_bundled_drive(
        self,
        name: str,
        drive_key: bytes,
        drive_id: DriveID,
        reward_settings: RewardSettings = NO_REWARD_SETTINGS,
    ) -> ArFSCreateBundledDriveResult:
        return await self.submit_bundled_drive(
            await self.prepare_private_bundled_drive(name, drive_key, drive_id, reward_settings)
        )

    # Files

    async def prepare_public_file_transactions(
        self,
        parent_folder_id: FolderID,
        file: ArFSFileToUpload,
        drive_id: DriveID,
        data_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        metadata_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        dest_file_name: Optional[str] = None,
        other_tags: Sequence[GQLTag] = (),
    ) -> PreparedFile:
        """Sign the data transaction, then the metadata pointing at its ID."""
        name = assert_valid_name(dest_file_name or file.name)
        file_id = new_entity_id()
        data_tx = await self.prepare_arfs_object_transaction(
            ArFSPublicFileDataPrototype(ArFSPublicFileDataTransactionData(file.data), file.content_type),
            data_reward_settings,
        )
        metadata = ArFSPublicFileMetadataTransactionData(
            name=name,
            size=file.size,
            last_modified_date=file.last_modified_date,
            data_tx_id=data_tx.id,
            data_content_type=file.content_type,
        )
        metadata_tx = await self.prepare_arfs_object_transaction(
            ArFSPublicFileMetaDataPrototype(
                metadata,
                drive_id=drive_id,
                file_id=file_id,
                parent_folder_id=parent_folder_id,
                unix_time=_unix_time(),
            ),
            metadata_reward_settings,
            other_tags,
        )
        return PreparedFile(file_id, drive_id, data_tx, metadata_tx)

    async def prepare_private_file_transactions(
        self,
        parent_folder_id: FolderID,
        file: ArFSFileToUpload,
        drive_id: DriveID,
        drive_key: bytes,
        data_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        metadata_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        dest_file_name: Optional[str] = None,
        other_tags: Sequence[GQLTag] = (),
    ) -> PreparedFile:
        """Like prepare_public_file_transactions(), both records sealed with the file key."""
        name = assert_valid_name(dest_file_name or file.name)
        file_id = new_entity_id()
        data_prototype = ArFSPrivateFileDataPrototype(
            ArFSPrivateFileDataTransactionData.from_plaintext(file.data, file_id, drive_key)
        )
        data_tx = await self.prepare_arfs_object_transaction(data_prototype, data_reward_settings)
        metadata_prototype = ArFSPrivateFileMetaDataPrototype(
            ArFSPrivateFileMetadataTransactionData.from_plaintext(
                name=name,
                size=file.size,
                last_modified_date=file.last_modified_date,
                data_tx_id=data_tx.id,
                data_content_type=file.content_type,
                file_id=file_id,
                drive_key=drive_key,
            ),
            drive_id=drive_id,
            file_id=file_id,
            parent_folder_id=parent_folder_id,
            unix_time=_unix_time(),
        )
        metadata_tx = await self.prepare_arfs_object_transaction(
            metadata_prototype, metadata_reward_settings, other_tags
        )
        return PreparedFile(file_id, drive_id, data_tx, metadata_tx, metadata_prototype.file_key)

    async def submit_file(
        self,
        prepared: PreparedFile,
        extra_steps: Optional[Dict[str, Transaction]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ArFSUploadFileResult:
        """Upload data, metadata and any extra transactions concurrently."""
        steps = {
            "data": prepared.data_transaction,
            "metadata": prepared.metadata_transaction,
            **(extra_steps or {}),
        }
        await self.submit_together(steps, prepared.file_id, on_progress)
        return ArFSUploadFileResult(
            file_id=prepared.file_id,
            data_tx_id=prepared.data_transaction.id,
            data_tx_reward=prepared.data_transaction.reward,
            metadata_tx_id=prepared.metadata_transaction.id,
            metadata_tx_reward=prepared.metadata_transaction.reward,
            file_key=prepared.file_key,
        )

    async def upload_public_file(
        self,
        parent_folder_id: FolderID,
        file: ArFSFileToUpload,
        drive_id: DriveID,
        data_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        metadata_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        dest_file_name: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ArFSUploadFileResult:
        prepared = await self.prepare_public_file_transactions(
            parent_folder_id, file, drive_id, data_reward_settings, metadata_reward_settings, dest_file_name
        )
        return await self.submit_file(prepared, on_progress=on_progress)

    async def upload_private_file(
        self,
        parent_folder_id: FolderID,
        file: ArFSFileToUpload,
        drive_id: DriveID,
        drive_key: bytes,
        data_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        metadata_reward_settings: RewardSettings = NO_REWARD_SETTINGS,
        dest_file_name: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ArFSUploadFileResult:
        prepared = await self.prepare_private_file_transactions(
            parent_folder_id,
            file,
            drive_id,
            drive_key,
            data_reward_settings,
            metadata_reward_settings,
            dest_file_name,
        )
        return await self.submit_file(prepared, on_progress=on_progress)

    # Moves

    async def _assert_move_target(
        self,
        entity: ArFSFileOrFolderEntity,
        new_parent_folder_id: FolderID,
        subtree_of: Optional[Callable[[], Awaitable[List[FolderID]]]] = None,
    ) -> None:
        if entity.parent_folder_id is None:
            raise ConsistencyError(
                f"Root folder {entity.entity_id} cannot be moved",
                entity_id=entity.entity_id,
            )
        actual_drive_id = await self.get_drive_id_for_folder_id(new_parent_folder_id)
        if actual_drive_id != entity.drive_id:
            raise ConsistencyError(
                f"Entity {entity.entity_id} cannot be moved to another drive",
                entity_id=entity.entity_id,
                expected_drive_id=entity.drive_id,
                actual_drive_id=actual_drive_id,
            )
        if subtree_of is not None and new_parent_folder_id in await subtree_of():
            raise ConsistencyError(
                f"Folder {entity.entity_id} cannot be moved into its own subtree",
                entity_id=entity.entity_id,
            )

    async def submit_move(self, prepared: PreparedMove) -> ArFSMoveResult:
        await self.submit_transaction("metadata", prepared.entity_id, prepared.transaction)
        return ArFSMoveResult(
            entity_id=prepared.entity_id,
            metadata_tx_id=prepared.transaction.id,
            metadata_tx_reward=prepared.transaction.reward,
            key=prepared.key,
        )

    async def prepare_move_public_folder(
        self,
        folder_id: FolderID,
        new_parent_folder_id: FolderID,
        reward_settings: RewardSettings = NO_REWARD_SETTINGS,
    ) -> PreparedMove:
        folder = await self.get_public_folder(folder_id)

        async def subtree() -> List[FolderID]:
            folders = await self.get_all_folders_of_public_drive(folder.drive_id, latest_revisions_only=True)
            return FolderHierarchy.new_from_entities(folders).sub_tree_of(folder_id).all_folder_ids()

        await self._assert_move_target(folder, new_parent_folder_id, subtree)
        prototype = ArFSPublicFolderMetaDataPrototype(
            ArFSPublicFolderTransactionData(folder.name),
            drive_id=folder.drive_id,
            folder_id=folder_id,
            parent_folder_id=new_parent_folder_id,
            unix_time=_unix_time(folder.unix_time),
        )
        transaction = await self.prepare_arfs_object_transaction(prototype, reward_settings)
        return PreparedMove(folder_id, EntityType.FOLDER, transaction)

    async def move_public_folder(
        self,
        folder_id: FolderID,
        new_parent_folder_id: FolderID,
        reward_settings: RewardSettings = NO_REWARD_SETTINGS,
    ) -> ArFSMoveResult:
        """Write a new revision of a folder under another parent in its drive.

        Raises:
            ConsistencyError: If the target is in another drive, is the folder
                itself or one of its descendants, or the folder is a root
        """
        return await self.submit_move(
            await self.prepare_move_public_folder(folder_id, new_parent_folder_id, reward_settings)
        )

    async def prepare_move_private_folder(
        self,
        folder_id: FolderID,
        new_parent_folder_id: FolderID,
        drive_key: bytes,
        reward_settings: RewardSettings = NO_REWARD_SETTINGS,
    ) -> PreparedMove:
        folder = await self.get_private_folder(folder_id, drive_key)

        async def subtree() -> List[FolderID]:
            folders = await self.get_all_folders_of_private_drive(
                folder.drive_id, drive_key, latest_revisions_only=True
            )
            return FolderHierarchy.new_from_entities(folders).sub_tree_of(folder_id).all_folder_ids()

        await self._assert_move_target(folder, new_parent_folder_id, subtree)
        prototype = ArFSPrivateFolderMetaDataPrototype(
            ArFSPrivateFolderTransactionData.from_plaintext(folder.name, drive_key),
            drive_id=folder.drive_id,
            folder_id=folder_id,
            parent_folder_id=new_parent_folder_id,
            unix_time=_unix_time(folder.unix_time),
        )
        transaction = await self.prepare_arfs_object_transaction(prototype, reward_settings)
        return PreparedMove(folder_id, EntityType.FOLDER, transaction, drive_key)

    async def move_private_folder(
        self,
        folder_id: FolderID,
        new_parent_folder_id: FolderID,
        drive_key: bytes,
        reward_settings: RewardSettings = NO_REWARD_SETTINGS,
    ) -> ArFSMoveResult:
        return await self.submit_move(
            await self.prepare_move_private_folder(folder_id, new_parent_folder_id, drive_key, reward_settings)
        )

    async def prepare_move_public_file(
        self,
        file_id: FileID,
        new_parent_folder_id: FolderID,
        reward_settings: RewardSettings = NO_REWARD_SETTINGS,
    ) -> PreparedMove:
        file = await self.get_public_file(file_id)
        await self._assert_move_target(file, new_parent_folder_id)
        prototype = ArFSPublicFileMetaDataPrototype(
            ArFSPublicFileMetadataTransactionData(
                name=file.name,
                size=file.size,
                last_modified_date=file.last_modified_date,
                data_tx_id=file.data_tx_id,
                data_content_type=file.data_content_type,
            ),
            drive_id=file.drive_id,
            file_id=file_id,
            parent_folder_id=new_parent_folder_id,
            unix_time=_unix_time(file.unix_time),
        )
        transaction = await self.prepare_arfs_object_transaction(prototype, reward_settings)
        return PreparedMove(file_id, EntityType.FILE, transaction)

    async def move_public_file(
        self,
        file_id: FileID,
        new_parent_folder_id: FolderID,
        reward_settings: RewardSettings = NO_REWARD_SETTINGS,
    ) -> ArFSMoveResult:
        """Write a new revision of a file under another folder of its drive.

        Raises:
            ConsistencyError: If the target folder is in another drive
        """
        return await self.submit_move(
            await self.prepare_move_public_file(file_id, new_parent_folder_id, reward_settings)
        )

    async def prepare_move_private_file(
        self,
        file_id: FileID,
        new_parent_folder_id: FolderID,
        drive_key: bytes,
        reward_settings: RewardSettings = NO_REWARD_SETTINGS,
    ) -> PreparedMove:
        file = await self.get_private_file(file_id, drive_key)
        await self._assert_move_target(file, new_parent_folder_id)
        prototype = ArFSPrivateFileMetaDataPrototype(
            ArFSPrivateFileMetadataTransactionData.from_plaintext(
                name=file.name,
                size=file.size,
                last_modified_date=file.last_modified_date,
                data_tx_id=file.data_tx_id,
                data_content_type=file.data_content_type,
                file_id=file_id,
                drive_key=drive_key,
            ),
            drive_id=file.drive_id,
            file_id=file_id,
            parent_folder_id=new_parent_folder_id,
            unix_time=_unix_time(file.unix_time),
        )
        transaction = await self.prepare_arfs_object_transaction(prototype, reward_settings)
        return PreparedMove(file_id, EntityType.FILE, transaction, prototype.file_key)

    async def move_private_file(
        self,
        file_id: FileID,
        new_parent_folder_id: FolderID,
        drive_key: bytes,
        reward_settings: RewardSettings = NO_REWARD_SETTINGS,
    ) -> ArFSMoveResult:
        return await self.submit_move(
            await self.prepare_move_private_file(file_id, new_parent_folder_id, drive_key, reward_settings)
        )

    # Private reads

    async def get_private_drive(self, drive_id: DriveID, drive_key: bytes) -> ArFSPrivateDrive:
        return await ArFSPrivateDriveBuilder(drive_id, self.gateway, drive_key, self.page_size).build()

    async def get_private_folder(self, folder_id: FolderID, drive_key: bytes) -> ArFSPrivateFolder:
        return await ArFSPrivateFolderBuilder(folder_id, self.gateway, drive_key, self.page_size).build()

    async def get_private_file(self, file_id: FileID, drive_key: bytes) -> ArFSPrivateFile:
        return await ArFSPrivateFileBuilder(file_id, self.gateway, drive_key, self.page_size).build()

    async def get_all_folders_of_private_drive(
        self,
        drive_id: DriveID,
        drive_key: bytes,
        latest_revisions_only: bool = False,
    ) -> List[ArFSPrivateFolder]:
        folders = await self._collect(
            [
                TagFilter.of(TagName.DRIVE_ID, drive_id),
                TagFilter.of(TagName.ENTITY_TYPE, EntityType.FOLDER.value),
            ],
            lambda node: ArFSPrivateFolderBuilder(
                node.tag_value(TagName.FOLDER_ID) or "", self.gateway, drive_key, self.page_size
            ).build_from_node(node),
        )
        return latest_revisions(folders) if latest_revisions_only else folders

    async def get_private_files_with_parent_folder_ids(
        self,
        folder_ids: Sequence[FolderID],
        drive_key: bytes,
        latest_revisions_only: bool = False,
    ) -> List[ArFSPrivateFile]:
        return await self._files_with_parents(
            folder_ids,
            lambda node: ArFSPrivateFileBuilder(
                node.tag_value(TagName.FILE_ID) or "", self.gateway, drive_key, self.page_size
            ).build_from_node(node),
            latest_revisions_only,
        )

    async def list_private_folder(
        self,
        folder_id: FolderID,
        drive_key: bytes,
    ) -> List[ArFSFileOrFolderWithPaths]:
        """List a private folder and everything below it, with drive-root paths.

        Raises:
            NotFoundError: If the folder has no records
            DecryptionError: If the drive key is wrong
        """
        folder = await self.get_private_folder(folder_id, drive_key)
        folders = await self.get_all_folders_of_private_drive(
            folder.drive_id, drive_key, latest_revisions_only=True
        )
        hierarchy = FolderHierarchy.new_from_entities(folders)
        subtree_ids = hierarchy.sub_tree_of(folder_id).all_folder_ids()
        files = await self.get_private_files_with_parent_folder_ids(
            subtree_ids, drive_key, latest_revisions_only=True
        )
        return _with_paths(folders, files, subtree_ids, hierarchy)

    async def get_private_file_data(self, file_id: FileID, drive_key: bytes) -> bytes:
        """Fetch and decrypt a private file's contents.

        Raises:
            DecryptionError: If the drive key is wrong
        """
        file = await self.get_private_file(file_id, drive_key)
        data, tags = await asyncio.gather(
            self.gateway.get_data(file.data_tx_id),
            self.gateway.get_tags(file.data_tx_id),
        )
        cipher_iv = next((t.value for t in tags if t.name == TagName.CIPHER_IV), None)
        if cipher_iv is None:
            raise NotFoundError(
                f"Data transaction {file.data_tx_id} of file {file_id} is not encrypted",
                entity_type=EntityType.FILE.value,
                entity_id=file_id,
            )
        return decrypt(data, cipher_iv, derive_file_key(file_id, drive_key), entity_id=file_id)


def _folder_result(prepared: PreparedFolder) -> ArFSCreateFolderResult:
    return ArFSCreateFolderResult(
        folder_id=prepared.folder_id,
        folder_tx_id=prepared.transaction.id,
        folder_tx_reward=prepared.transaction.reward,
        drive_key=prepared.drive_key,
    )
