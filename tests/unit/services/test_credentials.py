"""
Unit tests for encrypted credential storage.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from sync_tree_orders.errors import (
    CredentialsInvalidFormat,
    CredentialsMissing,
    DecryptionFailed,
)
from sync_tree_orders.pms.base import PmsType
from sync_tree_orders.security.encryption import encrypt, is_encrypted
from sync_tree_orders.services.credentials import CredentialStore, validate_credentials_format


@pytest.fixture
def store() -> CredentialStore:
    return CredentialStore(MagicMock())


@pytest.mark.unit
@pytest.mark.parametrize(
    "bundle,pms_type,expected",
    [
        ({"client_token": "c", "access_token": "a"}, "mews", True),
        ({"client_token": "c", "access_token": "  "}, "mews", False),
        ({"client_token": "c"}, "mews", False),
        ({"username": "u", "password": "p", "hotel_code": "H"}, PmsType.HOTELSPIDER, True),
        ({"username": "u", "password": "p"}, PmsType.HOTELSPIDER, False),
        (None, "mews", False),
    ],
)
def test_validate_credentials_format(bundle, pms_type, expected: bool) -> None:
    assert validate_credentials_format(bundle, pms_type) is expected


@pytest.mark.unit
@patch("sync_tree_orders.services.credentials.upsert_credentials")
def test_save_encrypts_secrets(mock_upsert: MagicMock, store: CredentialStore) -> None:
    conn = MagicMock()

    store.save_credentials(
        "acc-1",
        "hotelspider",
        {"username": "user", "password": "secret", "hotel_code": "HS-1"},
        conn=conn,
    )

    _, account_id, columns = mock_upsert.call_args.args
    assert account_id == "acc-1"
    assert columns["hotel_code"] == "HS-1"
    assert is_encrypted(columns["username"])
    assert is_encrypted(columns["password"])
    assert "secret" not in columns["password"]


@pytest.mark.unit
@patch("sync_tree_orders.services.credentials.upsert_credentials")
def test_save_rejects_incomplete_bundle(mock_upsert: MagicMock, store: CredentialStore) -> None:
    with pytest.raises(CredentialsInvalidFormat):
        store.save_credentials("acc-1", "mews", {"client_token": "c"})

    mock_upsert.assert_not_called()


@pytest.mark.unit
@patch("sync_tree_orders.services.credentials.get_credentials_row")
def test_get_decrypts(mock_row: MagicMock, store: CredentialStore) -> None:
    mock_row.return_value = {
        "client_token": encrypt("client"),
        "access_token": encrypt("access"),
        "username": None,
        "password": None,
        "hotel_code": None,
    }

    assert store.get_credentials("acc-1", "mews") == {
        "client_token": "client",
        "access_token": "access",
    }


@pytest.mark.unit
@patch("sync_tree_orders.services.credentials.get_credentials_row", return_value=None)
def test_get_missing(mock_row: MagicMock, store: CredentialStore) -> None:
    with pytest.raises(CredentialsMissing):
        store.get_credentials("acc-1", "mews")


@pytest.mark.unit
@patch("sync_tree_orders.services.credentials.get_credentials_row")
def test_get_incomplete(mock_row: MagicMock, store: CredentialStore) -> None:
    mock_row.return_value = {"client_token": encrypt("client"), "access_token": None}

    with pytest.raises(CredentialsInvalidFormat) as exc_info:
        store.get_credentials("acc-1", "mews")

    assert "access_token" in exc_info.value.message


@pytest.mark.unit
@patch("sync_tree_orders.services.credentials.get_credentials_row")
def test_get_tampered(mock_row: MagicMock, store: CredentialStore) -> None:
    mock_row.return_value = {"client_token": "00:11:22", "access_token": encrypt("a")}

    with pytest.raises(DecryptionFailed):
        store.get_credentials("acc-1", "mews")
