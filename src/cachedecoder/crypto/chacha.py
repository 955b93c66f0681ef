import os

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms
from typing import Tuple

from cachedecoder.utils.dataModels import STATIC_KEY, IV_SIZE

_COUNTER0 = bytes(8)


def chacha20_xor(data: bytes, key: bytes, iv: bytes) -> bytes:
    """Classic ChaCha20 (64-bit nonce, 64-bit block counter from zero)."""
    if len(iv) != IV_SIZE:
        raise ValueError(f"ChaCha20 IV must be {IV_SIZE} bytes, got {len(iv)}")
    # cryptography takes counter || nonce as one 16-byte value
    cipher = Cipher(algorithms.ChaCha20(key, _COUNTER0 + iv), mode=None)
    ctx = cipher.encryptor()
    return ctx.update(data) + ctx.finalize()


def decrypt_resource(data: bytes, key: bytes, iv: bytes) -> bytes:
    return chacha20_xor(data, key, iv)


def encrypt_resource(data: bytes, key: bytes, iv: bytes) -> bytes:
    return chacha20_xor(data, key, iv)


def decrypt_self_keyed(blob: bytes) -> Tuple[bytes, bytes]:
    if len(blob) < IV_SIZE:
        raise ValueError("blob is too small to hold an IV")
    iv, ct = blob[:IV_SIZE], blob[IV_SIZE:]
    return iv, chacha20_xor(ct, STATIC_KEY, iv)


def encrypt_self_keyed(data: bytes, iv: bytes | None = None) -> bytes:
    if iv is None:
        iv = os.urandom(IV_SIZE)
    return iv + chacha20_xor(data, STATIC_KEY, iv)
