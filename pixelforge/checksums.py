"""Checksum helpers for model weight files."""

import hashlib
import logging
from pathlib import Path


log = logging.getLogger(__name__)


def compute_sha256(file_path: str | Path, chunk_size: int = 1024 * 1024) -> str:
    """Compute the SHA256 hex digest for a file."""
    path = Path(file_path)
    assert path.exists(), f"file does not exist: {path}"
    assert path.is_file(), f"path is not a file: {path}"
    log.debug(f"computing sha256 for\n    {path}")

    # Stream file bytes to avoid loading large model files into memory.
    hasher = hashlib.sha256()
    with path.open("rb") as stream:
        chunk = stream.read(chunk_size)
        while chunk:
            hasher.update(chunk)
            chunk = stream.read(chunk_size)
    return hasher.hexdigest()


def verify_sha256(file_path: str | Path, expected_sha256: str) -> bool:
    """Return True when a file digest exactly matches the configured hex string.

    No digest length is assumed: a configured value of the wrong length simply
    never matches.
    """
    assert expected_sha256, "expected_sha256 cannot be empty"
    actual_sha256 = compute_sha256(file_path)
    is_match = actual_sha256.lower() == expected_sha256.strip().lower()
    log.debug(f"sha256 verification result for\n    {file_path}\n    match={is_match}")
    return is_match
