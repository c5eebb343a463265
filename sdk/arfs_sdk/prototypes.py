"""
Object prototypes: the tag set and payload of every ArFS record kind.

A prototype describes one ledger record about to be written. It pairs the
record's transaction data with the tags that identify it, and it knows which
tag names the caller may not override.

Variants (closed set):
    - Drive metadata: public, private
    - Folder metadata: public, private
    - File metadata: public, private
    - File data: public, private

Invariants:
    - ArFS, Entity-Type, App-Name, App-Version and Boost are always protected
    - Every tag a prototype writes is protected by that prototype
    - Prototypes are built per write and never persisted

How to change safely:
    - New record kinds need a new variant here and a builder in builders.py
    - Tag order is part of the record; append new tags at the end
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .errors import ValidationError
from .tx_data import (
    ArFSObjectTransactionData,
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
    DRIVE_AUTH_MODE_PASSWORD,
    JSON_CONTENT_TYPE,
    PRIVATE_CONTENT_TYPE,
    DriveID,
    DrivePrivacy,
    EntityType,
    FileID,
    FolderID,
    GQLTag,
    TagName,
)

BASE_PROTECTED_TAG_NAMES = (
    TagName.ARFS,
    TagName.ENTITY_TYPE,
    TagName.APP_NAME,
    TagName.APP_VERSION,
    TagName.BOOST,
)


def _now() -> int:
    return int(time.time())


class ObjectPrototype(ABC):
    """One ArFS record before it becomes a transaction or data item."""

    object_data: ArFSObjectTransactionData

    @abstractmethod
    def tags(self) -> List[GQLTag]:
        """Record-specific tags, without the App/ArFS base tags."""

    def protected_tag_names(self) -> List[str]:
        names = list(BASE_PROTECTED_TAG_NAMES)
        for tag in self.tags():
            if tag.name not in names:
                names.append(tag.name)
        return names

    def assert_protected_tags(self, caller_tags: Sequence[GQLTag]) -> None:
        """Reject caller tags that would override protocol tags.

        Raises:
            ValidationError: If any caller tag name is protected
        """
        protected = set(self.protected_tag_names())
        collisions = [tag.name for tag in caller_tags if tag.name in protected]
        if collisions:
            raise ValidationError(
                f"Tags cannot override protected ArFS tags: {', '.join(collisions)}",
                field_name="tags",
                errors=collisions,
            )


def _cipher_tags(cipher: str, cipher_iv: str) -> List[GQLTag]:
    return [GQLTag(TagName.CIPHER, cipher), GQLTag(TagName.CIPHER_IV, cipher_iv)]


# Drives


@dataclass
class ArFSPublicDriveMetaDataPrototype(ObjectPrototype):
    object_data: ArFSPublicDriveTransactionData
    drive_id: DriveID
    unix_time: int = field(default_factory=_now)

    def tags(self) -> List[GQLTag]:
        return [
            GQLTag(TagName.CONTENT_TYPE, JSON_CONTENT_TYPE),
            GQLTag(TagName.ENTITY_TYPE, EntityType.DRIVE.value),
            GQLTag(TagName.UNIX_TIME, str(self.unix_time)),
            GQLTag(TagName.DRIVE_ID, self.drive_id),
            GQLTag(TagName.DRIVE_PRIVACY, DrivePrivacy.PUBLIC.value),
        ]


@dataclass
class ArFSPrivateDriveMetaDataPrototype(ObjectPrototype):
    object_data: ArFSPrivateDriveTransactionData
    drive_id: DriveID
    unix_time: int = field(default_factory=_now)

    def tags(self) -> List[GQLTag]:
        return [
            GQLTag(TagName.CONTENT_TYPE, PRIVATE_CONTENT_TYPE),
            GQLTag(TagName.ENTITY_TYPE, EntityType.DRIVE.value),
            GQLTag(TagName.UNIX_TIME, str(self.unix_time)),
            GQLTag(TagName.DRIVE_ID, self.drive_id),
            GQLTag(TagName.DRIVE_PRIVACY, DrivePrivacy.PRIVATE.value),
            *_cipher_tags(self.object_data.cipher, self.object_data.cipher_iv),
            GQLTag(TagName.DRIVE_AUTH_MODE, DRIVE_AUTH_MODE_PASSWORD),
        ]


# Folders


@dataclass
class ArFSPublicFolderMetaDataPrototype(ObjectPrototype):
    object_data: ArFSPublicFolderTransactionData
    drive_id: DriveID
    folder_id: FolderID
    parent_folder_id: Optional[FolderID] = None
    unix_time: int = field(default_factory=_now)

    def tags(self) -> List[GQLTag]:
        tags = [
            GQLTag(TagName.CONTENT_TYPE, JSON_CONTENT_TYPE),
            GQLTag(TagName.ENTITY_TYPE, EntityType.FOLDER.value),
            GQLTag(TagName.UNIX_TIME, str(self.unix_time)),
            GQLTag(TagName.DRIVE_ID, self.drive_id),
            GQLTag(TagName.FOLDER_ID, self.folder_id),
        ]
        if self.parent_folder_id:
            tags.append(GQLTag(TagName.PARENT_FOLDER_ID, self.parent_folder_id))
        return tags

    def protected_tag_names(self) -> List[str]:
        # A root folder omits Parent-Folder-Id but still must not receive one
        names = super().protected_tag_names()
        if TagName.PARENT_FOLDER_ID not in names:
            names.append(TagName.PARENT_FOLDER_ID)
        return names


@dataclass
class ArFSPrivateFolderMetaDataPrototype(ObjectPrototype):
    object_data: ArFSPrivateFolderTransactionData
    drive_id: DriveID
    folder_id: FolderID
    parent_folder_id: Optional[FolderID] = None
    unix_time: int = field(default_factory=_now)

    def tags(self) -> List[GQLTag]:
        tags = [
            GQLTag(TagName.CONTENT_TYPE, PRIVATE_CONTENT_TYPE),
            GQLTag(TagName.ENTITY_TYPE, EntityType.FOLDER.value),
            GQLTag(TagName.UNIX_TIME, str(self.unix_time)),
            GQLTag(TagName.DRIVE_ID, self.drive_id),
            GQLTag(TagName.FOLDER_ID, self.folder_id),
        ]
        if self.parent_folder_id:
            tags.append(GQLTag(TagName.PARENT_FOLDER_ID, self.parent_folder_id))
        tags.extend(_cipher_tags(self.object_data.cipher, self.object_data.cipher_iv))
        return tags

    def protected_tag_names(self) -> List[str]:
        names = super().protected_tag_names()
        if TagName.PARENT_FOLDER_ID not in names:
            names.append(TagName.PARENT_FOLDER_ID)
        return names


# File metadata


@dataclass
class ArFSPublicFileMetaDataPrototype(ObjectPrototype):
    object_data: ArFSPublicFileMetadataTransactionData
    drive_id: DriveID
    file_id: FileID
    parent_folder_id: FolderID
    unix_time: int = field(default_factory=_now)

    def tags(self) -> List[GQLTag]:
        return [
            GQLTag(TagName.CONTENT_TYPE, JSON_CONTENT_TYPE),
            GQLTag(TagName.ENTITY_TYPE, EntityType.FILE.value),
            GQLTag(TagName.UNIX_TIME, str(self.unix_time)),
            GQLTag(TagName.DRIVE_ID, self.drive_id),
            GQLTag(TagName.FILE_ID, self.file_id),
            GQLTag(TagName.PARENT_FOLDER_ID, self.parent_folder_id),
        ]


@dataclass
class ArFSPrivateFileMetaDataPrototype(ObjectPrototype):
    object_data: ArFSPrivateFileMetadataTransactionData
    drive_id: DriveID
    file_id: FileID
    parent_folder_id: FolderID
    unix_time: int = field(default_factory=_now)

    def tags(self) -> List[GQLTag]:
        return [
            GQLTag(TagName.CONTENT_TYPE, PRIVATE_CONTENT_TYPE),
            GQLTag(TagName.ENTITY_TYPE, EntityType.FILE.value),
            GQLTag(TagName.UNIX_TIME, str(self.unix_time)),
            GQLTag(TagName.DRIVE_ID, self.drive_id),
            GQLTag(TagName.FILE_ID, self.file_id),
            GQLTag(TagName.PARENT_FOLDER_ID, self.parent_folder_id),
            *_cipher_tags(self.object_data.cipher, self.object_data.cipher_iv),
        ]

    @property
    def file_key(self) -> bytes:
        return self.object_data.file_key


# File data


@dataclass
class ArFSPublicFileDataPrototype(ObjectPrototype):
    object_data: ArFSPublicFileDataTransactionData
    content_type: str

    def tags(self) -> List[GQLTag]:
        return [GQLTag(TagName.CONTENT_TYPE, self.content_type)]


@dataclass
class ArFSPrivateFileDataPrototype(ObjectPrototype):
    object_data: ArFSPrivateFileDataTransactionData

    def tags(self) -> List[GQLTag]:
        return [
            GQLTag(TagName.CONTENT_TYPE, PRIVATE_CONTENT_TYPE),
            *_cipher_tags(self.object_data.cipher, self.object_data.cipher_iv),
        ]

    @property
    def file_key(self) -> bytes:
        return self.object_data.file_key
