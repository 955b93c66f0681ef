from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes


def sha1_hex(data: bytes) -> str:
    """Content digest used to tell edited files from extracted ones."""
    digest = hashes.Hash(hashes.SHA1(), backend=default_backend())
    digest.update(data)
    return digest.finalize().hex()
