"""Symmetric encryption shared by the config layer and the token issuer.

Uses Fernet (AES-128-CBC + HMAC-SHA256) from the ``cryptography`` library.
Encrypted config values are prefixed with ``ENC:`` so a plaintext config is
migrated transparently on the next save.  Access tokens are bare Fernet
tokens; Fernet embeds the issue timestamp, which is what makes the TTL check
in :func:`decrypt_token` possible.

The key lives at ``$CHEFCHAT_DATA_DIR/.key`` with owner-only permissions,
separate from ``config.json``.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

_ENC_PREFIX = "ENC:"

_data_dir = Path(os.environ.get("CHEFCHAT_DATA_DIR", Path.home() / ".chefchat"))
_key_file = _data_dir / ".key"

_fernet: Optional[Fernet] = None


def set_strict_permissions(filepath: Path) -> None:
    """chmod 600 *filepath*; failures are logged, not raised."""
    try:
        os.chmod(str(filepath), 0o600)
    except FileNotFoundError:
        logger.warning("Cannot set permissions: %s does not exist", filepath)
    except OSError as e:
        logger.warning("Failed to set permissions on %s: %s", filepath, e)


def _get_or_create_key() -> bytes:
    """Load the Fernet key from disk, or generate and persist a new one."""
    _data_dir.mkdir(parents=True, exist_ok=True)

    if _key_file.exists():
        key = _key_file.read_bytes().strip()
        try:
            Fernet(key)  # validate
            return key
        except ValueError:
            logger.warning("Existing .key file is invalid, generating new key")

    key = Fernet.generate_key()
    _key_file.write_bytes(key)
    set_strict_permissions(_key_file)
    logger.info("Generated new encryption key at %s", _key_file)
    return key


def get_fernet() -> Fernet:
    """Return the process-wide :class:`Fernet` instance."""
    global _fernet
    if _fernet is None:
        _fernet = Fernet(_get_or_create_key())
    return _fernet


def encrypt_value(plaintext: str) -> str:
    """Encrypt a non-empty string into ``"ENC:<fernet-token>"``."""
    if not plaintext:
        return plaintext
    token = get_fernet().encrypt(plaintext.encode("utf-8"))
    return _ENC_PREFIX + token.decode("ascii")


def decrypt_value(ciphertext: str) -> str:
    """Decrypt an ``"ENC:..."`` string back to plaintext.

    Values without the prefix are returned unchanged.  A value that fails to
    decrypt (key rotated, file corrupted) comes back as ``""`` with a warning
    so the operator can re-enter it.
    """
    if not ciphertext:
        return ciphertext
    if not ciphertext.startswith(_ENC_PREFIX):
        return ciphertext
    token = ciphertext[len(_ENC_PREFIX):]
    try:
        return get_fernet().decrypt(token.encode("ascii")).decode("utf-8")
    except InvalidToken:
        logger.warning(
            "Failed to decrypt a config value (key may have changed). "
            "The value will be treated as empty."
        )
        return ""


def encrypt_token(payload: str, fernet: Optional[Fernet] = None) -> str:
    f = fernet or get_fernet()
    return f.encrypt(payload.encode("utf-8")).decode("ascii")


def decrypt_token(
    token: str, ttl_seconds: int, fernet: Optional[Fernet] = None
) -> Optional[str]:
    """Return the token payload, or None if it is forged or older than *ttl_seconds*."""
    f = fernet or get_fernet()
    try:
        return f.decrypt(token.encode("ascii"), ttl=ttl_seconds).decode("utf-8")
    except (InvalidToken, UnicodeError):
        return None
