"""
Vault Key Rotation — Batch re-encryption of credentials under a new key.

Re-encrypts every stored credential, active or soft-deleted, from the old
cipher to the new one in id-ordered batches. Rows that already decrypt with
the new key are skipped, so re-running after a partial failure is safe.

Each row is written back only if its ciphertext is unchanged since it was
read; a row updated concurrently is re-read and retried instead of being
overwritten with its previous secret. After the main pass a second sweep
re-encrypts any row that was written under the old key after it had been
visited, and every row still unreadable with the new key at the end is
counted in ``errors``.

Writers should encrypt with the new key while a rotation runs (see
:meth:`CredentialStore.begin_rotation`); the sweep covers those that don't.

Callers run this under the governance middleware with
``Action.ROTATE_ENCRYPTION_KEY`` so the rotation itself is audited.

Security Note:
    Plaintext exists in memory only during re-encryption of each row.
    Never log plaintext or ciphertext values.
"""
import logging
from typing import Any, AsyncIterator

from ..exceptions import DecryptionError
from .backend import StoreBackend
from .crypto import SecretCipher

logger = logging.getLogger("credential_vault.vault")

ROTATED = "rotated"
SKIPPED = "skipped"
FAILED = "errors"

# Re-reads of a row whose ciphertext keeps changing under us.
MAX_ATTEMPTS = 3


def _readable(cipher: SecretCipher, row: dict) -> bool:
    try:
        cipher.decrypt(row["encrypted_value"], row["encryption_iv"])
    except DecryptionError:
        return False
    return True


async def _scan(
    backend: StoreBackend, batch_size: int, label: str
) -> AsyncIterator[dict[str, Any]]:
    last_id = 0
    batch_num = 0
    while True:
        rows = await backend.fetch_credential_batch(last_id, batch_size)
        if not rows:
            return
        batch_num += 1
        logger.info("%s: batch %d (%d rows)", label, batch_num, len(rows))
        for row in rows:
            last_id = row["id"]
            yield row


async def _rotate_row(
    backend: StoreBackend,
    row: dict,
    old_cipher: SecretCipher,
    new_cipher: SecretCipher,
) -> str:
    """Move one row to ``new_cipher``; returns ROTATED, SKIPPED or FAILED."""
    for _ in range(MAX_ATTEMPTS):
        if _readable(new_cipher, row):
            return SKIPPED
        try:
            plaintext = old_cipher.decrypt(
                row["encrypted_value"], row["encryption_iv"],
            )
        except DecryptionError:
            return FAILED
        encrypted_value, encryption_iv = new_cipher.encrypt(plaintext)
        updated = await backend.update_credential(
            row["id"],
            row["user_id"],
            {"encrypted_value": encrypted_value, "encryption_iv": encryption_iv},
            expected={"encrypted_value": row["encrypted_value"]},
        )
        if updated is not None:
            return ROTATED
        row = await backend.fetch_credential(row["id"])
        if row is None:
            return FAILED
    return FAILED


async def rotate_encryption_key(
    backend: StoreBackend,
    old_cipher: SecretCipher,
    new_cipher: SecretCipher,
    batch_size: int = 100,
) -> dict:
    """Re-encrypt all credentials from ``old_cipher`` to ``new_cipher``.

    Args:
        backend: Backing store holding the credentials.
        old_cipher: Cipher built from the current key.
        new_cipher: Cipher built from the replacement key.
        batch_size: Number of rows fetched per batch.

    Returns:
        Stats dict with keys: total, rotated, skipped, repaired, errors.
        ``repaired`` counts rows fixed by the closing sweep; ``errors``
        counts rows left unreadable with the new key.

    Raises:
        ValueError: If batch_size is not positive.
        StoreUnavailable: If the backing store cannot be reached.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    stats = {"total": 0, "rotated": 0, "skipped": 0, "repaired": 0, "errors": 0}

    logger.info("Starting encryption key rotation (batch_size=%d)", batch_size)

    async for row in _scan(backend, batch_size, "Rotating"):
        stats["total"] += 1
        outcome = await _rotate_row(backend, row, old_cipher, new_cipher)
        if outcome == FAILED:
            logger.error(
                "Error rotating credential id=%s user=%s",
                row["id"], row["user_id"],
            )
        else:
            stats[outcome] += 1

    async for row in _scan(backend, batch_size, "Verifying"):
        if _readable(new_cipher, row):
            continue
        outcome = await _rotate_row(backend, row, old_cipher, new_cipher)
        if outcome == ROTATED:
            logger.warning(
                "Credential id=%s was written with the old key during rotation",
                row["id"],
            )
            stats["repaired"] += 1
        elif outcome == FAILED:
            stats["errors"] += 1

    logger.info("Key rotation complete: %s", stats)
    return stats
