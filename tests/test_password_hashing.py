"""Tests for credential hashing and bearer header parsing."""

from __future__ import annotations

import unittest

from quicktalk.security import dummy_verify, extract_bearer_token, hash_password, verify_password


class PasswordHashingTests(unittest.TestCase):
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("supersecurepassword")

        self.assertTrue(hashed.startswith("$pbkdf2-sha256$"))
        self.assertNotIn("supersecurepassword", hashed)
        self.assertTrue(verify_password("supersecurepassword", hashed))
        self.assertFalse(verify_password("incorrect", hashed))

    def test_hashes_are_salted(self) -> None:
        self.assertNotEqual(hash_password("same"), hash_password("same"))

    def test_malformed_hash_does_not_verify(self) -> None:
        self.assertFalse(verify_password("anything", "not-a-hash"))
        self.assertFalse(verify_password("anything", ""))

    def test_empty_password_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            hash_password("")

    def test_dummy_verify_runs(self) -> None:
        dummy_verify()


class BearerTokenTests(unittest.TestCase):
    def test_extracts_token(self) -> None:
        self.assertEqual(extract_bearer_token("Bearer abc"), "abc")
        self.assertEqual(extract_bearer_token("bearer  abc "), "abc")

    def test_rejects_other_schemes(self) -> None:
        self.assertIsNone(extract_bearer_token(None))
        self.assertIsNone(extract_bearer_token("Basic abc"))
        self.assertIsNone(extract_bearer_token("Bearer"))
        self.assertIsNone(extract_bearer_token("Bearer   "))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
