"""
Entity model for ArFS drives, folders and files.

Every entity is an immutable snapshot of one ledger record (one revision).
Private variants carry cipher metadata, never keys.

Invariants:
    - entity_id is stable across revisions; tx_id identifies the revision
    - parent_folder_id is None exactly for a drive's root folder
    - Path-annotated entities have path, entity_id_path and tx_id_path with
      the same number of "/" separated segments
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Optional, Union

from .types import ROOT_FOLDER_ID, DriveID, EntityType, FileID, FolderID, TransactionID

if TYPE_CHECKING:
    from .hierarchy import FolderHierarchy


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


@dataclass(frozen=True)
class ArFSEntity:
    """Fields common to every ArFS entity.

    Attributes:
        app_name: App-Name tag of the record
        app_version: App-Version tag of the record
        arfs: Protocol version (ArFS tag)
        content_type: Content-Type of the metadata payload
        drive_id: Drive the entity belongs to
        entity_type: drive, folder or file
        name: Display name (decrypted for private entities)
        tx_id: Transaction holding this revision
        unix_time: Revision timestamp in seconds
    """

    app_name: str
    app_version: str
    arfs: str
    content_type: str
    drive_id: DriveID
    entity_type: EntityType
    name: str
    tx_id: TransactionID
    unix_time: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to a camelCase dictionary for JSON output."""
        result = {_camel(k): v for k, v in asdict(self).items()}
        result["entityType"] = self.entity_type.value
        return result


@dataclass(frozen=True)
class ArFSPublicDrive(ArFSEntity):
    drive_privacy: str
    root_folder_id: FolderID

    @property
    def entity_id(self) -> DriveID:
        return self.drive_id


@dataclass(frozen=True)
class ArFSPrivateDrive(ArFSEntity):
    drive_privacy: str
    root_folder_id: FolderID
    drive_auth_mode: str
    cipher: str
    cipher_iv: str

    @property
    def entity_id(self) -> DriveID:
        return self.drive_id


@dataclass(frozen=True)
class ArFSFileOrFolderEntity(ArFSEntity):
    """Common base of folders and files."""

    parent_folder_id: Optional[FolderID]
    entity_id: str

    @property
    def is_root_folder(self) -> bool:
        return self.entity_type is EntityType.FOLDER and self.parent_folder_id is None


@dataclass(frozen=True)
class ArFSPublicFolder(ArFSFileOrFolderEntity):
    pass


@dataclass(frozen=True)
class ArFSPrivateFolder(ArFSFileOrFolderEntity):
    cipher: str
    cipher_iv: str


@dataclass(frozen=True)
class ArFSPublicFile(ArFSFileOrFolderEntity):
    size: int
    last_modified_date: int
    data_tx_id: TransactionID
    data_content_type: str

    @property
    def file_id(self) -> FileID:
        return self.entity_id


@dataclass(frozen=True)
class ArFSPrivateFile(ArFSFileOrFolderEntity):
    size: int
    last_modified_date: int
    data_tx_id: TransactionID
    data_content_type: str
    cipher: str
    cipher_iv: str

    @property
    def file_id(self) -> FileID:
        return self.entity_id


ArFSDrive = Union[ArFSPublicDrive, ArFSPrivateDrive]
ArFSFolder = Union[ArFSPublicFolder, ArFSPrivateFolder]
ArFSFile = Union[ArFSPublicFile, ArFSPrivateFile]


@dataclass(frozen=True)
class ArFSFileOrFolderWithPaths:
    """A folder or file decorated with its drive-root-relative paths.

    Attributes:
        entity: The folder or file
        path: Names from the drive root, e.g. "/A/" or "/A/x.txt"
        entity_id_path: Same shape with entity IDs
        tx_id_path: Same shape with transaction IDs
    """

    entity: ArFSFileOrFolderEntity
    path: str
    entity_id_path: str
    tx_id_path: str

    @classmethod
    def from_hierarchy(
        cls,
        entity: ArFSFileOrFolderEntity,
        hierarchy: FolderHierarchy,
    ) -> ArFSFileOrFolderWithPaths:
        """Compute paths of an entity against a full-drive hierarchy.

        Raises:
            HierarchyUsageError: If the hierarchy is a scoped subtree
        """
        if entity.entity_type is EntityType.FOLDER:
            return cls(
                entity=entity,
                path=hierarchy.path_to_folder_id(entity.entity_id),
                entity_id_path=hierarchy.entity_path_to_folder_id(entity.entity_id),
                tx_id_path=hierarchy.tx_path_to_folder_id(entity.entity_id),
            )
        parent = entity.parent_folder_id or ROOT_FOLDER_ID
        return cls(
            entity=entity,
            path=f"{hierarchy.path_to_folder_id(parent)}{entity.name}",
            entity_id_path=f"{hierarchy.entity_path_to_folder_id(parent)}{entity.entity_id}",
            tx_id_path=f"{hierarchy.tx_path_to_folder_id(parent)}{entity.tx_id}",
        )

    @property
    def entity_id(self) -> str:
        return self.entity.entity_id

    @property
    def name(self) -> str:
        return self.entity.name

    @property
    def entity_type(self) -> EntityType:
        return self.entity.entity_type

    def to_dict(self) -> dict[str, Any]:
        result = self.entity.to_dict()
        result.update(
            {
                "path": self.path,
                "entityIdPath": self.entity_id_path,
                "txIdPath": self.tx_id_path,
            }
        )
        return result
