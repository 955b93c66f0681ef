import unittest

from cachedecoder.crypto.chacha import (
    chacha20_xor, decrypt_resource, decrypt_self_keyed, encrypt_resource, encrypt_self_keyed,
)
from cachedecoder.crypto.hash import sha1_hex

# Classic ChaCha20, all-zero key and IV: first two keystream blocks
ZERO_BLOCK0 = (
    "76b8e0ada0f13d90405d6ae55386bd28bdd219b8a08ded1aa836efcc8b770dc7"
    "da41597c5157488d7724e03fb8d84a376a43b8f41518a11cc387b669b2ee6586"
)
ZERO_BLOCK1_PREFIX = "9f07e7be5551387a98ba977c732d080d"


class ChaChaTests(unittest.TestCase):
    def setUp(self):
        self.key = bytes(range(32))
        self.iv = b"\x01\x02\x03\x04\x05\x06\x07\x08"

    def test_zero_key_keystream(self):
        """Keystream matches the reference ChaCha20 vector"""
        out = chacha20_xor(bytes(128), bytes(32), bytes(8))
        self.assertEqual(out[:64].hex(), ZERO_BLOCK0)
        self.assertEqual(out[64:80].hex(), ZERO_BLOCK1_PREFIX)

    def test_resource_roundtrip(self):
        payload = b"resource payload " * 300
        ct = encrypt_resource(payload, self.key, self.iv)
        self.assertEqual(len(ct), len(payload))
        self.assertNotEqual(ct, payload)
        self.assertEqual(decrypt_resource(ct, self.key, self.iv), payload)

    def test_resource_empty(self):
        self.assertEqual(encrypt_resource(b"", self.key, self.iv), b"")

    def test_wrong_key_yields_garbage(self):
        ct = encrypt_resource(b"secret data", self.key, self.iv)
        self.assertNotEqual(decrypt_resource(ct, bytes(32), self.iv), b"secret data")

    def test_self_keyed_prefixes_iv(self):
        blob = encrypt_self_keyed(b"hello world", self.iv)
        self.assertEqual(blob[:8], self.iv)
        self.assertEqual(len(blob), len(b"hello world") + 8)
        iv, plaintext = decrypt_self_keyed(blob)
        self.assertEqual(iv, self.iv)
        self.assertEqual(plaintext, b"hello world")

    def test_self_keyed_fresh_iv(self):
        """A new IV is drawn when none is given"""
        a = encrypt_self_keyed(b"same")
        b = encrypt_self_keyed(b"same")
        self.assertNotEqual(a[:8], b[:8])
        self.assertEqual(decrypt_self_keyed(a)[1], b"same")
        self.assertEqual(decrypt_self_keyed(b)[1], b"same")

    def test_self_keyed_reused_iv_is_stable(self):
        self.assertEqual(encrypt_self_keyed(b"stable", self.iv), encrypt_self_keyed(b"stable", self.iv))

    def test_short_blob_rejected(self):
        with self.assertRaises(ValueError):
            decrypt_self_keyed(b"1234")

    def test_bad_iv_length_rejected(self):
        with self.assertRaises(ValueError):
            chacha20_xor(b"data", self.key, b"short")


class HashTests(unittest.TestCase):
    def test_sha1_hex(self):
        self.assertEqual(sha1_hex(b"abc"), "a9993e364706816aba3e25717850c26c9cd0d89d")


if __name__ == "__main__":
    unittest.main()
