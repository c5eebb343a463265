"""
Protocol constants and small value types for the ArFS SDK.

This module holds the vocabulary shared by every layer:
- Tag names written to and queried from the ledger
- Entity types and drive privacy values
- Reward (fee) settings applied when a transaction is created

Invariants:
    - Tag names are literal and case-sensitive
    - ROOT_FOLDER_ID never collides with a generated entity ID (UUIDv4)
    - Fee amounts are integer winston, never fractional
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

# Identifier aliases. All of them are plain strings on the wire.
DriveID = str
FolderID = str
FileID = str
EntityID = str
TransactionID = str
ArweaveAddress = str
Winston = int

CURRENT_ARFS_VERSION = "0.11"
DEFAULT_APP_NAME = "ArDrive-Core"
DEFAULT_APP_VERSION = "1.0"

# Sentinel parent ID of a drive's root folder ("virtual drive root").
ROOT_FOLDER_ID = "root folder"

JSON_CONTENT_TYPE = "application/json"
PRIVATE_CONTENT_TYPE = "application/octet-stream"

CIPHER_AES256_GCM = "AES256-GCM"
DRIVE_AUTH_MODE_PASSWORD = "password"

TIP_TYPE_DATA_UPLOAD = "data upload"


class TagName:
    """Ledger tag names used by the ArFS protocol."""

    APP_NAME = "App-Name"
    APP_VERSION = "App-Version"
    ARFS = "ArFS"
    ENTITY_TYPE = "Entity-Type"
    DRIVE_ID = "Drive-Id"
    FOLDER_ID = "Folder-Id"
    PARENT_FOLDER_ID = "Parent-Folder-Id"
    FILE_ID = "File-Id"
    DRIVE_PRIVACY = "Drive-Privacy"
    DRIVE_AUTH_MODE = "Drive-Auth-Mode"
    CONTENT_TYPE = "Content-Type"
    UNIX_TIME = "Unix-Time"
    CIPHER = "Cipher"
    CIPHER_IV = "Cipher-IV"
    BOOST = "Boost"
    TIP_TYPE = "Tip-Type"


class EntityType(Enum):
    """Kinds of ArFS entities."""

    DRIVE = "drive"
    FOLDER = "folder"
    FILE = "file"


class DrivePrivacy(Enum):
    """Drive privacy modes."""

    PUBLIC = "public"
    PRIVATE = "private"


@dataclass(frozen=True)
class GQLTag:
    """A single name/value tag attached to a ledger record."""

    name: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "value": self.value}


@dataclass(frozen=True)
class RewardSettings:
    """Fee settings applied when a transaction is created.

    Attributes:
        reward: Explicit fee override in winston
        fee_multiple: Boost factor applied to the network fee. Only values
            greater than 1.0 take effect.
    """

    reward: Winston | None = None
    fee_multiple: float | None = None

    def __post_init__(self) -> None:
        if self.reward is not None and self.reward < 0:
            raise ValueError(f"reward must be non-negative, got {self.reward}")
        if self.fee_multiple is not None and self.fee_multiple <= 0:
            raise ValueError(f"fee_multiple must be positive, got {self.fee_multiple}")

    @property
    def is_boosted(self) -> bool:
        return self.fee_multiple is not None and self.fee_multiple > 1.0

    @property
    def boost_tag_value(self) -> str:
        """Fee multiple as written in the Boost tag: "2" for 2.0, "1.5" for 1.5."""
        multiple = float(self.fee_multiple or 1.0)
        return str(int(multiple)) if multiple.is_integer() else repr(multiple)

    def apply(self, reward: Winston) -> Winston:
        """Return the reward after applying the boost, rounded up."""
        if not self.is_boosted:
            return reward
        # Fractional winston is rejected by the network
        return math.ceil(reward * self.fee_multiple)
