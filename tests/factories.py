"""
Test doubles and entity factories shared by unit and integration tests.
"""

import hashlib
import hmac

from sdk.arfs_sdk.entities import ArFSPublicFile, ArFSPublicFolder
from sdk.arfs_sdk.types import EntityType


class FakeWallet:
    """Deterministic HMAC signer standing in for an RSA wallet."""

    def __init__(self, address: str = "wallet-address-1", secret: bytes = b"test-secret") -> None:
        self._address = address
        self._secret = secret

    @property
    def address(self) -> str:
        return self._address

    async def sign(self, message: bytes) -> bytes:
        return hmac.new(self._secret, message, hashlib.sha256).digest()


class StaticContractOracle:
    """Community contract state held in memory."""

    def __init__(self, state: dict) -> None:
        self.state = state
        self.calls = 0

    async def get_community_contract(self) -> dict:
        self.calls += 1
        return self.state


COMMUNITY_STATE = {
    "settings": [["fee", 15], ["quorum", 0.15]],
    "balances": {"holder-a": 600, "holder-b": 400},
    "vault": {"holder-b": [{"balance": 1000, "start": 1, "end": 100}]},
}


def make_folder(folder_id, parent_folder_id, name=None, drive_id="drive-1", unix_time=1):
    return ArFSPublicFolder(
        app_name="ArDrive-Core",
        app_version="1.0",
        arfs="0.11",
        content_type="application/json",
        drive_id=drive_id,
        entity_type=EntityType.FOLDER,
        name=name or folder_id.upper(),
        tx_id=f"tx-{folder_id}",
        unix_time=unix_time,
        parent_folder_id=parent_folder_id,
        entity_id=folder_id,
    )


def make_file(file_id, parent_folder_id, name, unix_time=1):
    return ArFSPublicFile(
        app_name="ArDrive-Core",
        app_version="1.0",
        arfs="0.11",
        content_type="application/json",
        drive_id="drive-1",
        entity_type=EntityType.FILE,
        name=name,
        tx_id=f"tx-{file_id}",
        unix_time=unix_time,
        parent_folder_id=parent_folder_id,
        entity_id=file_id,
        size=3,
        last_modified_date=0,
        data_tx_id=f"data-{file_id}",
        data_content_type="text/plain",
    )
