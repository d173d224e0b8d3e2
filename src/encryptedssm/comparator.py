"""Decrypt declared ciphertext and compare it with what SSM holds.

Plaintext only ever lives in local variables here: it is handed to
``PutParameter`` by the engine, or compared and dropped.
"""

from __future__ import annotations

import base64
import binascii
import hmac
from typing import TYPE_CHECKING

from botocore.exceptions import BotoCoreError, ClientError

from encryptedssm.errors import DecryptionError, MalformedCiphertextError

if TYPE_CHECKING:
    from mypy_boto3_kms import KMSClient

# Shown in place of encrypted_value when the declaration no longer matches SSM.
STALE_VALUE = "Outdated sensitive value"

# KMS error codes meaning "this key cannot open this blob" rather than an
# access or availability problem.
_UNDECRYPTABLE_CODES = frozenset({"InvalidCiphertextException", "IncorrectKeyException"})


def decode_ciphertext(encrypted_value: str) -> bytes:
    """Decode the base64 text form of a KMS ciphertext blob.

    Raises:
        MalformedCiphertextError: If *encrypted_value* is not valid base64.
    """
    try:
        return base64.b64decode(encrypted_value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedCiphertextError(f"encrypted_value is not valid base64: {exc}") from exc


def _decrypt(kms_client: KMSClient, key_id: str, encrypted_value: str) -> bytes:
    blob = decode_ciphertext(encrypted_value)
    try:
        result = kms_client.decrypt(KeyId=key_id, CiphertextBlob=blob)
    except (ClientError, BotoCoreError) as exc:
        raise DecryptionError(key_id, exc) from exc
    return result["Plaintext"]


def decrypt_value(kms_client: KMSClient, key_id: str, encrypted_value: str) -> str:
    """Decrypt *encrypted_value* with *key_id* and return the plaintext as text.

    Raises:
        MalformedCiphertextError: Bad base64, or plaintext that is not UTF-8.
        DecryptionError: KMS rejected the request. Never retried here.
    """
    plaintext = _decrypt(kms_client, key_id, encrypted_value)
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedCiphertextError("decrypted value is not valid UTF-8 text") from exc


def observed_encrypted_value(
    kms_client: KMSClient,
    key_id: str,
    encrypted_value: str,
    remote_plaintext: str,
) -> str:
    """Return the value to record for ``encrypted_value`` after a read.

    The declared ciphertext is kept when it decrypts to exactly what SSM
    stores; otherwise :data:`STALE_VALUE` is returned, which differs from any
    real declaration and so forces a write on the next apply. A blob KMS
    cannot open with *key_id* counts as a mismatch; any other KMS failure
    propagates.
    """
    # A prior record that already drifted has nothing left to decrypt.
    if encrypted_value == STALE_VALUE:
        return STALE_VALUE
    try:
        plaintext = _decrypt(kms_client, key_id, encrypted_value)
    except DecryptionError as exc:
        if exc.code in _UNDECRYPTABLE_CODES:
            return STALE_VALUE
        raise
    if hmac.compare_digest(plaintext, remote_plaintext.encode("utf-8")):
        return encrypted_value
    return STALE_VALUE
