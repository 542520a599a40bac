"""Per-process session token."""
from __future__ import annotations

import hashlib
import secrets

_RANDOM_BYTES = 512

_session_id: str | None = None


def new_session_token() -> str:
    """Hash 512 random bytes into a hex token."""
    return hashlib.sha1(secrets.token_bytes(_RANDOM_BYTES)).hexdigest()


def get_session_id() -> str:
    """Return the token for this process, generating it on first use."""
    global _session_id
    if _session_id is None:
        _session_id = new_session_token()
    return _session_id
