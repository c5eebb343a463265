"""
Unit tests for object prototypes and transaction data.

Tests cover:
- Tag sets of every record kind
- Protected tag enforcement
- Payload encoding, public and private
"""

import json
import uuid

import pytest

from sdk.arfs_sdk.crypto import KEY_SIZE, decrypt, derive_file_key
from sdk.arfs_sdk.errors import ValidationError
from sdk.arfs_sdk.prototypes import (
    ArFSPrivateDriveMetaDataPrototype,
    ArFSPrivateFileDataPrototype,
    ArFSPrivateFileMetaDataPrototype,
    ArFSPrivateFolderMetaDataPrototype,
    ArFSPublicDriveMetaDataPrototype,
    ArFSPublicFileDataPrototype,
    ArFSPublicFileMetaDataPrototype,
    ArFSPublicFolderMetaDataPrototype,
)
from sdk.arfs_sdk.tx_data import (
    ArFSPrivateDriveTransactionData,
    ArFSPrivateFileDataTransactionData,
    ArFSPrivateFileMetadataTransactionData,
    ArFSPrivateFolderTransactionData,
    ArFSPublicDriveTransactionData,
    ArFSPublicFileDataTransactionData,
    ArFSPublicFileMetadataTransactionData,
    ArFSPublicFolderTransactionData,
)
from sdk.arfs_sdk.types import GQLTag

DRIVE_KEY = b"\x07" * KEY_SIZE


def tag_map(prototype):
    return {t.name: t.value for t in prototype.tags()}


class TestDrivePrototypes:
    def test_public_drive_tags(self):
        prototype = ArFSPublicDriveMetaDataPrototype(
            ArFSPublicDriveTransactionData("Photos", "root-id"), drive_id="drive-1", unix_time=100
        )
        assert tag_map(prototype) == {
            "Content-Type": "application/json",
            "Entity-Type": "drive",
            "Unix-Time": "100",
            "Drive-Id": "drive-1",
            "Drive-Privacy": "public",
        }
        payload = json.loads(prototype.object_data.as_transaction_data())
        assert payload == {"name": "Photos", "rootFolderId": "root-id"}

    def test_private_drive_tags_and_payload(self):
        data = ArFSPrivateDriveTransactionData.from_plaintext("Secret", "root-id", DRIVE_KEY)
        prototype = ArFSPrivateDriveMetaDataPrototype(data, drive_id="drive-1", unix_time=100)
        tags = tag_map(prototype)
        assert tags["Drive-Privacy"] == "private"
        assert tags["Cipher"] == "AES256-GCM"
        assert tags["Cipher-IV"] == data.cipher_iv
        assert tags["Drive-Auth-Mode"] == "password"
        assert tags["Content-Type"] == "application/octet-stream"
        plain = decrypt(data.as_transaction_data(), data.cipher_iv, DRIVE_KEY)
        assert json.loads(plain) == {"name": "Secret", "rootFolderId": "root-id"}

    def test_private_data_repr_hides_key(self):
        data = ArFSPrivateDriveTransactionData.from_plaintext("Secret", "root-id", DRIVE_KEY)
        assert repr(DRIVE_KEY) not in repr(data)


class TestFolderPrototypes:
    def test_root_folder_has_no_parent_tag(self):
        prototype = ArFSPublicFolderMetaDataPrototype(
            ArFSPublicFolderTransactionData("Root"), drive_id="d", folder_id="f", unix_time=1
        )
        assert "Parent-Folder-Id" not in tag_map(prototype)

    def test_parent_folder_id_always_protected(self):
        prototype = ArFSPublicFolderMetaDataPrototype(
            ArFSPublicFolderTransactionData("Root"), drive_id="d", folder_id="f", unix_time=1
        )
        with pytest.raises(ValidationError):
            prototype.assert_protected_tags([GQLTag("Parent-Folder-Id", "x")])

    def test_private_folder_payload_encrypted(self):
        data = ArFSPrivateFolderTransactionData.from_plaintext("Hidden", DRIVE_KEY)
        prototype = ArFSPrivateFolderMetaDataPrototype(
            data, drive_id="d", folder_id="f", parent_folder_id="p", unix_time=1
        )
        assert b"Hidden" not in data.as_transaction_data()
        assert tag_map(prototype)["Parent-Folder-Id"] == "p"
        assert tag_map(prototype)["Cipher-IV"] == data.cipher_iv


class TestFilePrototypes:
    def test_public_file_metadata(self):
        data = ArFSPublicFileMetadataTransactionData("x.txt", 3, 1000, "data-tx", "text/plain")
        prototype = ArFSPublicFileMetaDataPrototype(
            data, drive_id="d", file_id="file-1", parent_folder_id="p", unix_time=1
        )
        assert tag_map(prototype)["File-Id"] == "file-1"
        assert tag_map(prototype)["Parent-Folder-Id"] == "p"
        assert json.loads(data.as_transaction_data()) == {
            "name": "x.txt",
            "size": 3,
            "lastModifiedDate": 1000,
            "dataTxId": "data-tx",
            "dataContentType": "text/plain",
        }

    def test_public_file_data_content_type(self):
        prototype = ArFSPublicFileDataPrototype(ArFSPublicFileDataTransactionData(b"abc"), "text/plain")
        assert prototype.tags() == [GQLTag("Content-Type", "text/plain")]
        assert prototype.object_data.as_transaction_data() == b"abc"

    def test_private_file_uses_file_key(self):
        file_id = str(uuid.uuid4())
        data = ArFSPrivateFileDataTransactionData.from_plaintext(b"contents", file_id, DRIVE_KEY)
        prototype = ArFSPrivateFileDataPrototype(data)
        assert prototype.file_key == derive_file_key(file_id, DRIVE_KEY)
        assert decrypt(data.as_transaction_data(), data.cipher_iv, prototype.file_key) == b"contents"

    def test_private_file_metadata_uses_file_key(self):
        file_id = str(uuid.uuid4())
        data = ArFSPrivateFileMetadataTransactionData.from_plaintext(
            "x.txt", 3, 0, "data-tx", "text/plain", file_id, DRIVE_KEY
        )
        prototype = ArFSPrivateFileMetaDataPrototype(
            data, drive_id="d", file_id=file_id, parent_folder_id="p", unix_time=1
        )
        plain = decrypt(data.as_transaction_data(), data.cipher_iv, prototype.file_key)
        assert json.loads(plain)["name"] == "x.txt"


class TestProtectedTags:
    @pytest.fixture
    def prototype(self):
        return ArFSPublicFileMetaDataPrototype(
            ArFSPublicFileMetadataTransactionData("x", 1, 0, "t", "text/plain"),
            drive_id="d",
            file_id="f",
            parent_folder_id="p",
            unix_time=1,
        )

    def test_base_names_protected(self, prototype):
        names = prototype.protected_tag_names()
        for name in ("ArFS", "Entity-Type", "App-Name", "App-Version", "Boost"):
            assert name in names

    def test_collisions_listed(self, prototype):
        with pytest.raises(ValidationError) as exc_info:
            prototype.assert_protected_tags([GQLTag("Drive-Id", "x"), GQLTag("Custom", "y"), GQLTag("Boost", "2")])
        assert exc_info.value.errors == ["Drive-Id", "Boost"]

    def test_custom_tags_allowed(self, prototype):
        prototype.assert_protected_tags([GQLTag("Custom", "y")])
