import hashlib


def hash_commitment(share: bytes) -> str:
    """
    Commits to a share. The hex digest is what gets published inside a token.

    Parameters:
        share (bytes): The raw identity share

    Returns:
        str: Lowercase SHA-256 hex digest of the share.
    """
    return hashlib.sha256(share).hexdigest()


def message_to_hash(message: str) -> int:
    # digest of the UTF-8 message, read as a big-endian integer
    return int.from_bytes(hashlib.sha256(message.encode("utf-8")).digest(), "big")
