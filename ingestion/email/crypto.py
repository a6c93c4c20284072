"""Utility functions for encrypting and decrypting stored account passwords.

Tokens are ``base64(nonce || tag || ciphertext)`` produced with AES-256-GCM
under the SHA-256 digest of the master secret.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from mail_indexer.core.exceptions import AuthenticationFailure, ConfigurationError

logger = logging.getLogger(__name__)

_KEY_ENV_VAR = "EMAILS_MASTER_KEY"
_NONCE_LEN = 12
_TAG_LEN = 16


def _get_master_key(master_key: Optional[str] = None) -> str:
    key = master_key or os.environ.get(_KEY_ENV_VAR)
    if not key:
        raise ConfigurationError(f"{_KEY_ENV_VAR} is not set")
    return key


def _get_aead(master_key: Optional[str] = None) -> AESGCM:
    """Return an :class:`AESGCM` keyed by the digest of the master secret.

    The secret is sourced from the ``EMAILS_MASTER_KEY`` environment variable
    unless passed explicitly.
    """
    digest = hashlib.sha256(_get_master_key(master_key).encode("utf-8")).digest()
    return AESGCM(digest)


def encrypt(value: str, master_key: Optional[str] = None) -> str:
    """Encrypt ``value`` into a single base64 token."""
    aead = _get_aead(master_key)
    nonce = os.urandom(_NONCE_LEN)
    sealed = aead.encrypt(nonce, value.encode("utf-8"), None)
    # AESGCM appends the tag; tokens carry it in front of the ciphertext
    ciphertext, tag = sealed[:-_TAG_LEN], sealed[-_TAG_LEN:]
    return base64.b64encode(nonce + tag + ciphertext).decode("ascii")


def decrypt(token: str, master_key: Optional[str] = None) -> str:
    """Decrypt a token produced by :func:`encrypt`.

    Raises :class:`AuthenticationFailure` when the token was tampered with,
    was sealed under another key, or is not a token at all.
    """
    aead = _get_aead(master_key)
    try:
        data = base64.b64decode(token.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError, ValueError) as exc:
        raise AuthenticationFailure("Value is not a valid credential token") from exc
    if len(data) < _NONCE_LEN + _TAG_LEN:
        raise AuthenticationFailure("Credential token is too short")

    nonce = data[:_NONCE_LEN]
    tag = data[_NONCE_LEN:_NONCE_LEN + _TAG_LEN]
    ciphertext = data[_NONCE_LEN + _TAG_LEN:]
    try:
        plain = aead.decrypt(nonce, ciphertext + tag, None)
    except InvalidTag as exc:
        raise AuthenticationFailure("Credential token failed verification") from exc
    try:
        return plain.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise AuthenticationFailure("Credential token does not hold text") from exc


def resolve_stored_password(stored: str, master_key: Optional[str] = None) -> str:
    """Return the plaintext password for a stored value.

    Rows written before encryption was enabled hold plaintext, so a value that
    does not decrypt is used as-is. This keeps old accounts working; it is not
    a security check. A wrong password then shows up as a login failure.
    """
    if not (master_key or os.environ.get(_KEY_ENV_VAR)):
        return stored
    try:
        return decrypt(stored, master_key)
    except AuthenticationFailure:
        logger.warning("Stored password is not a valid token; using stored value")
        return stored
