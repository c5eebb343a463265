"""
Payloads of ArFS ledger records.

Each class knows how to turn itself into the bytes written as the record's
data. Public metadata is compact UTF-8 JSON. Private variants are built
through from_plaintext(), which encrypts once and keeps the cipher IV (and
for files the derived file key) for the prototype's tags and the caller.

Invariants:
    - as_transaction_data() is deterministic for a given instance
    - Private instances never hold plaintext after construction
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict

from .crypto import derive_file_key, encrypt
from .types import CIPHER_AES256_GCM, FileID, FolderID, TransactionID


def _json_bytes(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class ArFSObjectTransactionData(ABC):
    """Data of one ledger record."""

    @abstractmethod
    def as_transaction_data(self) -> bytes:
        """Bytes written as the record's data."""


# Drives


@dataclass(frozen=True)
class ArFSPublicDriveTransactionData(ArFSObjectTransactionData):
    name: str
    root_folder_id: FolderID

    def as_transaction_data(self) -> bytes:
        return _json_bytes({"name": self.name, "rootFolderId": self.root_folder_id})


@dataclass(frozen=True)
class ArFSPrivateDriveTransactionData(ArFSObjectTransactionData):
    ciphertext: bytes
    cipher_iv: str
    drive_key: bytes = field(repr=False)
    cipher: str = CIPHER_AES256_GCM

    @classmethod
    def from_plaintext(
        cls, name: str, root_folder_id: FolderID, drive_key: bytes
    ) -> ArFSPrivateDriveTransactionData:
        plain = ArFSPublicDriveTransactionData(name, root_folder_id).as_transaction_data()
        sealed = encrypt(plain, drive_key)
        return cls(sealed.data, sealed.cipher_iv, drive_key, sealed.cipher)

    def as_transaction_data(self) -> bytes:
        return self.ciphertext


# Folders


@dataclass(frozen=True)
class ArFSPublicFolderTransactionData(ArFSObjectTransactionData):
    name: str

    def as_transaction_data(self) -> bytes:
        return _json_bytes({"name": self.name})


@dataclass(frozen=True)
class ArFSPrivateFolderTransactionData(ArFSObjectTransactionData):
    ciphertext: bytes
    cipher_iv: str
    drive_key: bytes = field(repr=False)
    cipher: str = CIPHER_AES256_GCM

    @classmethod
    def from_plaintext(cls, name: str, drive_key: bytes) -> ArFSPrivateFolderTransactionData:
        plain = ArFSPublicFolderTransactionData(name).as_transaction_data()
        sealed = encrypt(plain, drive_key)
        return cls(sealed.data, sealed.cipher_iv, drive_key, sealed.cipher)

    def as_transaction_data(self) -> bytes:
        return self.ciphertext


# File metadata


@dataclass(frozen=True)
class ArFSPublicFileMetadataTransactionData(ArFSObjectTransactionData):
    """Metadata of a file revision.

    Attributes:
        name: File name
        size: Plaintext size in bytes
        last_modified_date: Last modification, milliseconds since the epoch
        data_tx_id: Transaction holding the file data
        data_content_type: MIME type of the plaintext data
    """

    name: str
    size: int
    last_modified_date: int
    data_tx_id: TransactionID
    data_content_type: str

    def as_transaction_data(self) -> bytes:
        return _json_bytes(
            {
                "name": self.name,
                "size": self.size,
                "lastModifiedDate": self.last_modified_date,
                "dataTxId": self.data_tx_id,
                "dataContentType": self.data_content_type,
            }
        )


@dataclass(frozen=True)
class ArFSPrivateFileMetadataTransactionData(ArFSObjectTransactionData):
    ciphertext: bytes
    cipher_iv: str
    file_key: bytes = field(repr=False)
    cipher: str = CIPHER_AES256_GCM

    @classmethod
    def from_plaintext(
        cls,
        name: str,
        size: int,
        last_modified_date: int,
        data_tx_id: TransactionID,
        data_content_type: str,
        file_id: FileID,
        drive_key: bytes,
    ) -> ArFSPrivateFileMetadataTransactionData:
        file_key = derive_file_key(file_id, drive_key)
        plain = ArFSPublicFileMetadataTransactionData(
            name, size, last_modified_date, data_tx_id, data_content_type
        ).as_transaction_data()
        sealed = encrypt(plain, file_key)
        return cls(sealed.data, sealed.cipher_iv, file_key, sealed.cipher)

    def as_transaction_data(self) -> bytes:
        return self.ciphertext


# File data


@dataclass(frozen=True)
class ArFSPublicFileDataTransactionData(ArFSObjectTransactionData):
    data: bytes

    def as_transaction_data(self) -> bytes:
        return self.data


@dataclass(frozen=True)
class ArFSPrivateFileDataTransactionData(ArFSObjectTransactionData):
    ciphertext: bytes
    cipher_iv: str
    file_key: bytes = field(repr=False)
    cipher: str = CIPHER_AES256_GCM

    @classmethod
    def from_plaintext(
        cls, data: bytes, file_id: FileID, drive_key: bytes
    ) -> ArFSPrivateFileDataTransactionData:
        file_key = derive_file_key(file_id, drive_key)
        sealed = encrypt(data, file_key)
        return cls(sealed.data, sealed.cipher_iv, file_key, sealed.cipher)

    def as_transaction_data(self) -> bytes:
        return self.ciphertext
