"""
Credential storage for PMS accounts.

Secrets are encrypted with security.encryption before they reach the database
and decrypted again on every read. Callers hold the decrypted bundle for the
length of one run only. Plaintext values are never logged.
"""

from __future__ import annotations

from typing import Optional, Union

import structlog
from sqlalchemy.engine import Connection, Engine

from sync_tree_orders.db.readers.credentials import get_credentials_row
from sync_tree_orders.db.writers.credentials import upsert_credentials
from sync_tree_orders.errors import CredentialsInvalidFormat, CredentialsMissing
from sync_tree_orders.pms.base import PmsType
from sync_tree_orders.pms.factory import parse_pms_type
from sync_tree_orders.security.encryption import decrypt, encrypt

logger = structlog.get_logger(__name__)

REQUIRED_FIELDS: dict[PmsType, tuple[str, ...]] = {
    PmsType.MEWS: ("client_token", "access_token"),
    PmsType.HOTELSPIDER: ("username", "password", "hotel_code"),
}

# Stored as-is; everything else is encrypted
PLAINTEXT_FIELDS = frozenset({"hotel_code"})


def validate_credentials_format(
    bundle: Optional[dict[str, str]], pms_type: Union[str, PmsType]
) -> bool:
    """
    Check that every required field is present and non-empty.

    This is a structural check only; the PMS is not contacted.
    """
    if not bundle:
        return False
    required = REQUIRED_FIELDS[parse_pms_type(pms_type)]
    return all(isinstance(bundle.get(f), str) and bundle[f].strip() for f in required)


class CredentialStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def get_credentials(self, account_id: str, pms_type: Union[str, PmsType]) -> dict[str, str]:
        """
        Load and decrypt the credential bundle of an account.

        Args:
            account_id: Internal account id
            pms_type: PMS of the account, selects the required fields

        Returns:
            dict[str, str]: Decrypted bundle

        Raises:
            CredentialsMissing: If the account has no credentials
            CredentialsInvalidFormat: If a required field is empty
            DecryptionFailed: If a stored value cannot be decrypted
        """
        kind = parse_pms_type(pms_type)
        with self.engine.connect() as conn:
            row = get_credentials_row(conn, account_id)

        if row is None:
            raise CredentialsMissing(f"No credentials stored for account {account_id}")

        bundle: dict[str, str] = {}
        for field_name in REQUIRED_FIELDS[kind]:
            value = row.get(field_name)
            if not value:
                continue
            bundle[field_name] = value if field_name in PLAINTEXT_FIELDS else decrypt(value)

        if not validate_credentials_format(bundle, kind):
            missing = [f for f in REQUIRED_FIELDS[kind] if not bundle.get(f)]
            raise CredentialsInvalidFormat(f"Missing credential fields: {', '.join(missing)}")

        return bundle

    def save_credentials(
        self,
        account_id: str,
        pms_type: Union[str, PmsType],
        bundle: dict[str, str],
        conn: Optional[Connection] = None,
    ) -> None:
        """
        Validate, encrypt and store a credential bundle, replacing any previous one.

        Pass ``conn`` to write inside the caller's transaction.

        Raises:
            CredentialsInvalidFormat: If a required field is missing or empty
        """
        kind = parse_pms_type(pms_type)
        if not validate_credentials_format(bundle, kind):
            raise CredentialsInvalidFormat(
                f"{kind.value} credentials require: {', '.join(REQUIRED_FIELDS[kind])}"
            )

        columns = {
            f: bundle[f] if f in PLAINTEXT_FIELDS else encrypt(bundle[f])
            for f in REQUIRED_FIELDS[kind]
        }
        if conn is not None:
            upsert_credentials(conn, account_id, columns)
        else:
            with self.engine.begin() as own_conn:
                upsert_credentials(own_conn, account_id, columns)

        logger.info("credentials_saved", account_id=account_id, pms_type=kind.value)
