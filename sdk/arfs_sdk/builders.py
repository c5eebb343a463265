"""
Entity builders.

A builder turns ledger records into entities. Given an entity ID it pages
through every revision, keeps the winning one and builds it from its tags
and payload. Given one ledger node it builds that revision directly; the
paging listings in the DAO use that path.

Invariants:
    - Zero matching records raise NotFoundError
    - A record of the wrong entity type or privacy raises NotFoundError
    - Private payloads that fail authentication raise DecryptionError;
      a name is never left empty or garbled
    - Required tags missing from a record raise ValidationError

How to change safely:
    - Tag parsing lives in _common_fields(); keep entity constructors in sync
      with entities.py
    - Keep the revision choice identical to filters.latest_revisions()
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, List, Optional, TypeVar

from .crypto import decrypt, derive_file_key
from .entities import (
    ArFSEntity,
    ArFSPrivateDrive,
    ArFSPrivateFile,
    ArFSPrivateFolder,
    ArFSPublicDrive,
    ArFSPublicFile,
    ArFSPublicFolder,
)
from .errors import NotFoundError, ValidationError
from .ledger.base import LedgerGateway, LedgerNode, TagFilter, iter_query_pages
from .types import DrivePrivacy, EntityType, TagName

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=ArFSEntity)


def _required_tag(node: LedgerNode, name: str) -> str:
    value = node.tag_value(name)
    if value is None:
        raise ValidationError(
            f"Record {node.id} is missing the {name} tag",
            field_name=name,
        )
    return value


def _parse_json(data: bytes, node: LedgerNode) -> Dict[str, Any]:
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ValidationError(f"Record {node.id} has a malformed JSON payload", field_name="data") from e
    if not isinstance(payload, dict):
        raise ValidationError(f"Record {node.id} payload is not a JSON object", field_name="data")
    return payload


def _required_field(payload: Dict[str, Any], key: str, node: LedgerNode) -> Any:
    if key not in payload:
        raise ValidationError(f"Record {node.id} payload is missing {key}", field_name=key)
    return payload[key]


class ArFSEntityBuilder(ABC, Generic[E]):
    """Builds one kind of entity from ledger records.

    Attributes:
        entity_id: ID of the entity to build
        gateway: Ledger to read from
        page_size: Records requested per query page
    """

    entity_type: EntityType
    private: bool = False

    def __init__(self, entity_id: str, gateway: LedgerGateway, page_size: int = 100) -> None:
        self.entity_id = entity_id
        self.gateway = gateway
        self.page_size = page_size

    @abstractmethod
    def identity_filters(self) -> List[TagFilter]:
        """Filters matching every revision of the entity."""

    @abstractmethod
    async def _build(self, node: LedgerNode, common: Dict[str, Any], data: bytes) -> E:
        """Build the entity from a checked node, its common fields and its payload."""

    async def build(self) -> E:
        """Build the latest revision of the entity.

        Raises:
            NotFoundError: If no record matches the entity ID
            DecryptionError: If a private payload cannot be decrypted
        """
        winner: Optional[LedgerNode] = None
        winner_time = -1
        revision_count = 0
        async for page in iter_query_pages(self.gateway, self.identity_filters(), self.page_size):
            for edge in page.edges:
                revision_count += 1
                unix_time = self._unix_time(edge.node)
                if winner is None or unix_time > winner_time:
                    winner, winner_time = edge.node, unix_time

        if winner is None:
            raise NotFoundError(
                f"No {self.entity_type.value} found with ID {self.entity_id}",
                entity_type=self.entity_type.value,
                entity_id=self.entity_id,
            )
        logger.debug(
            "Latest revision selected",
            extra={"entity_id": self.entity_id, "tx_id": winner.id, "revisions": revision_count},
        )
        return await self.build_from_node(winner)

    async def build_from_node(self, node: LedgerNode) -> E:
        """Build the revision held by one ledger node.

        Raises:
            NotFoundError: If the node is of another entity type or privacy
            DecryptionError: If a private payload cannot be decrypted
        """
        self._check_node(node)
        data = await self.gateway.get_data(node.id)
        return await self._build(node, self._common_fields(node), data)

    def _check_node(self, node: LedgerNode) -> None:
        entity_type = node.tag_value(TagName.ENTITY_TYPE)
        is_private = node.tag_value(TagName.CIPHER_IV) is not None
        if entity_type != self.entity_type.value or is_private != self.private:
            expected = f"{'private' if self.private else 'public'} {self.entity_type.value}"
            raise NotFoundError(
                f"Record {node.id} is not a {expected}",
                entity_type=self.entity_type.value,
                entity_id=self.entity_id,
            )

    @staticmethod
    def _unix_time(node: LedgerNode) -> int:
        value = _required_tag(node, TagName.UNIX_TIME)
        try:
            return int(value)
        except ValueError as e:
            raise ValidationError(f"Record {node.id} has invalid Unix-Time {value}", field_name=TagName.UNIX_TIME) from e

    def _common_fields(self, node: LedgerNode) -> Dict[str, Any]:
        return {
            "app_name": _required_tag(node, TagName.APP_NAME),
            "app_version": _required_tag(node, TagName.APP_VERSION),
            "arfs": _required_tag(node, TagName.ARFS),
            "content_type": _required_tag(node, TagName.CONTENT_TYPE),
            "drive_id": _required_tag(node, TagName.DRIVE_ID),
            "entity_type": self.entity_type,
            "tx_id": node.id,
            "unix_time": self._unix_time(node),
        }


# Drives


class ArFSPublicDriveBuilder(ArFSEntityBuilder[ArFSPublicDrive]):
    entity_type = EntityType.DRIVE

    def identity_filters(self) -> List[TagFilter]:
        return [
            TagFilter.of(TagName.DRIVE_ID, self.entity_id),
            TagFilter.of(TagName.ENTITY_TYPE, EntityType.DRIVE.value),
            TagFilter.of(TagName.DRIVE_PRIVACY, DrivePrivacy.PUBLIC.value),
        ]

    async def _build(self, node: LedgerNode, common: Dict[str, Any], data: bytes) -> ArFSPublicDrive:
        payload = _parse_json(data, node)
        return ArFSPublicDrive(
            **common,
            name=_required_field(payload, "name", node),
            drive_privacy=DrivePrivacy.PUBLIC.value,
            root_folder_id=_required_field(payload, "rootFolderId", node),
        )


class ArFSPrivateDriveBuilder(ArFSEntityBuilder[ArFSPrivateDrive]):
    entity_type = EntityType.DRIVE
    private = True

    def __init__(self, entity_id: str, gateway: LedgerGateway, drive_key: bytes, page_size: int = 100) -> None:
        super().__init__(entity_id, gateway, page_size)
        self.drive_key = drive_key

    def identity_filters(self) -> List[TagFilter]:
        return [
            TagFilter.of(TagName.DRIVE_ID, self.entity_id),
            TagFilter.of(TagName.ENTITY_TYPE, EntityType.DRIVE.value),
            TagFilter.of(TagName.DRIVE_PRIVACY, DrivePrivacy.PRIVATE.value),
        ]

    async def _build(self, node: LedgerNode, common: Dict[str, Any], data: bytes) -> ArFSPrivateDrive:
        cipher_iv = _required_tag(node, TagName.CIPHER_IV)
        plain = decrypt(data, cipher_iv, self.drive_key, entity_id=common["drive_id"])
        payload = _parse_json(plain, node)
        return ArFSPrivateDrive(
            **common,
            name=_required_field(payload, "name", node),
            drive_privacy=DrivePrivacy.PRIVATE.value,
            root_folder_id=_required_field(payload, "rootFolderId", node),
            drive_auth_mode=_required_tag(node, TagName.DRIVE_AUTH_MODE),
            cipher=_required_tag(node, TagName.CIPHER),
            cipher_iv=cipher_iv,
        )


# Folders


class ArFSPublicFolderBuilder(ArFSEntityBuilder[ArFSPublicFolder]):
    entity_type = EntityType.FOLDER

    def identity_filters(self) -> List[TagFilter]:
        return [
            TagFilter.of(TagName.FOLDER_ID, self.entity_id),
            TagFilter.of(TagName.ENTITY_TYPE, EntityType.FOLDER.value),
        ]

    async def _build(self, node: LedgerNode, common: Dict[str, Any], data: bytes) -> ArFSPublicFolder:
        payload = _parse_json(data, node)
        return ArFSPublicFolder(
            **common,
            name=_required_field(payload, "name", node),
            entity_id=_required_tag(node, TagName.FOLDER_ID),
            parent_folder_id=node.tag_value(TagName.PARENT_FOLDER_ID),
        )


class ArFSPrivateFolderBuilder(ArFSEntityBuilder[ArFSPrivateFolder]):
    entity_type = EntityType.FOLDER
    private = True

    def __init__(self, entity_id: str, gateway: LedgerGateway, drive_key: bytes, page_size: int = 100) -> None:
        super().__init__(entity_id, gateway, page_size)
        self.drive_key = drive_key

    def identity_filters(self) -> List[TagFilter]:
        return [
            TagFilter.of(TagName.FOLDER_ID, self.entity_id),
            TagFilter.of(TagName.ENTITY_TYPE, EntityType.FOLDER.value),
        ]

    async def _build(self, node: LedgerNode, common: Dict[str, Any], data: bytes) -> ArFSPrivateFolder:
        folder_id = _required_tag(node, TagName.FOLDER_ID)
        cipher_iv = _required_tag(node, TagName.CIPHER_IV)
        payload = _parse_json(decrypt(data, cipher_iv, self.drive_key, entity_id=folder_id), node)
        return ArFSPrivateFolder(
            **common,
            name=_required_field(payload, "name", node),
            entity_id=folder_id,
            parent_folder_id=node.tag_value(TagName.PARENT_FOLDER_ID),
            cipher=_required_tag(node, TagName.CIPHER),
            cipher_iv=cipher_iv,
        )


# Files


def _file_fields(payload: Dict[str, Any], node: LedgerNode) -> Dict[str, Any]:
    return {
        "name": _required_field(payload, "name", node),
        "size": int(_required_field(payload, "size", node)),
        "last_modified_date": int(_required_field(payload, "lastModifiedDate", node)),
        "data_tx_id": _required_field(payload, "dataTxId", node),
        "data_content_type": _required_field(payload, "dataContentType", node),
    }


class ArFSPublicFileBuilder(ArFSEntityBuilder[ArFSPublicFile]):
    entity_type = EntityType.FILE

    def identity_filters(self) -> List[TagFilter]:
        return [
            TagFilter.of(TagName.FILE_ID, self.entity_id),
            TagFilter.of(TagName.ENTITY_TYPE, EntityType.FILE.value),
        ]

    async def _build(self, node: LedgerNode, common: Dict[str, Any], data: bytes) -> ArFSPublicFile:
        payload = _parse_json(data, node)
        return ArFSPublicFile(
            **common,
            **_file_fields(payload, node),
            entity_id=_required_tag(node, TagName.FILE_ID),
            parent_folder_id=_required_tag(node, TagName.PARENT_FOLDER_ID),
        )


class ArFSPrivateFileBuilder(ArFSEntityBuilder[ArFSPrivateFile]):
    entity_type = EntityType.FILE
    private = True

    def __init__(self, entity_id: str, gateway: LedgerGateway, drive_key: bytes, page_size: int = 100) -> None:
        super().__init__(entity_id, gateway, page_size)
        self.drive_key = drive_key

    def identity_filters(self) -> List[TagFilter]:
        return [
            TagFilter.of(TagName.FILE_ID, self.entity_id),
            TagFilter.of(TagName.ENTITY_TYPE, EntityType.FILE.value),
        ]

    async def _build(self, node: LedgerNode, common: Dict[str, Any], data: bytes) -> ArFSPrivateFile:
        file_id = _required_tag(node, TagName.FILE_ID)
        cipher_iv = _required_tag(node, TagName.CIPHER_IV)
        file_key = derive_file_key(file_id, self.drive_key)
        payload = _parse_json(decrypt(data, cipher_iv, file_key, entity_id=file_id), node)
        return ArFSPrivateFile(
            **common,
            **_file_fields(payload, node),
            entity_id=file_id,
            parent_folder_id=_required_tag(node, TagName.PARENT_FOLDER_ID),
            cipher=_required_tag(node, TagName.CIPHER),
            cipher_iv=cipher_iv,
        )
