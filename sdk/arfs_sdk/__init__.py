"""
ArFS Python SDK - a virtual file system on an append-only ledger.

This SDK reconstructs drives, folders and files from tagged ledger records
and writes new ones:
- Entity model and builders (public and encrypted private variants)
- Folder hierarchy with drive-root paths
- Object prototypes: the tags and payload of every record kind
- DAO for paging reads, listings, moves and multi-step writes
- Chunked, resumable uploads with progress
- Community tip computation and weighted recipient selection

Example:
    >>> from sdk.arfs_sdk import ArDrive, ArDriveCommunityOracle, HttpLedgerGateway, VertoContractOracle
    >>>
    >>> async with HttpLedgerGateway() as gateway:
    ...     ardrive = ArDrive(wallet, gateway, ArDriveCommunityOracle(VertoContractOracle()))
    ...     drive = await ardrive.create_public_drive("Photos")
    ...     root_folder_id = drive.created[1].entity_id
    ...     await ardrive.upload_public_file(root_folder_id, ArFSFileToUpload.from_path("cat.png"))

Invariants:
    - Records are never modified; an update is a newer record with the same entity ID
    - Keys are never written to the ledger
    - Wallet, keys and IDs are explicit parameters; there is no session state

Version: 1.0.0
"""

__version__ = "1.0.0"

from .ardrive import (
    ArDrive,
    ArDriveAnonymous,
    ArFSEntityData,
    ArFSResult,
    ArFSTipData,
    ArFSTransactionStatus,
    TxStatus,
)
from .community import (
    MINIMUM_TIP_WINSTON,
    ArDriveCommunityOracle,
    ContractOracle,
    VertoContractOracle,
)
from .config import Settings, setup_logging
from .dao import ArFSDAO, ArFSDAOAnonymous, ArFSFileToUpload
from .entities import (
    ArFSFileOrFolderWithPaths,
    ArFSPrivateDrive,
    ArFSPrivateFile,
    ArFSPrivateFolder,
    ArFSPublicDrive,
    ArFSPublicFile,
    ArFSPublicFolder,
)
from .errors import (
    ArFSError,
    ConsistencyError,
    DecryptionError,
    HierarchyUsageError,
    InsufficientFundsError,
    LedgerConnectionError,
    LedgerError,
    NotFoundError,
    SelectionError,
    UploadIncompleteError,
    ValidationError,
    WriteStepError,
)
from .hierarchy import FolderHierarchy, FolderTreeNode
from .ledger import HttpLedgerGateway, InMemoryLedger, LedgerGateway, Wallet
from .types import ROOT_FOLDER_ID, DrivePrivacy, EntityType, GQLTag, RewardSettings

__all__ = [
    # Version
    "__version__",
    # Facade
    "ArDrive",
    "ArDriveAnonymous",
    "ArFSResult",
    "ArFSEntityData",
    "ArFSTipData",
    "ArFSTransactionStatus",
    "TxStatus",
    # DAO
    "ArFSDAO",
    "ArFSDAOAnonymous",
    "ArFSFileToUpload",
    # Entities
    "ArFSPublicDrive",
    "ArFSPrivateDrive",
    "ArFSPublicFolder",
    "ArFSPrivateFolder",
    "ArFSPublicFile",
    "ArFSPrivateFile",
    "ArFSFileOrFolderWithPaths",
    "FolderHierarchy",
    "FolderTreeNode",
    # Ledger
    "LedgerGateway",
    "Wallet",
    "InMemoryLedger",
    "HttpLedgerGateway",
    # Community
    "ArDriveCommunityOracle",
    "ContractOracle",
    "VertoContractOracle",
    "MINIMUM_TIP_WINSTON",
    # Types and config
    "EntityType",
    "DrivePrivacy",
    "GQLTag",
    "RewardSettings",
    "ROOT_FOLDER_ID",
    "Settings",
    "setup_logging",
    # Errors
    "ArFSError",
    "NotFoundError",
    "ConsistencyError",
    "DecryptionError",
    "ValidationError",
    "InsufficientFundsError",
    "SelectionError",
    "UploadIncompleteError",
    "HierarchyUsageError",
    "WriteStepError",
    "LedgerError",
    "LedgerConnectionError",
]
