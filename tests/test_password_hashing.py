"""Tests for one-way password hashing of stored user records."""

from __future__ import annotations

import unittest

from usersvc.passwords import hash_password, verify_password


class PasswordHashingTests(unittest.TestCase):
    def test_hash_is_not_plaintext_and_verifies(self) -> None:
        hashed = hash_password("supersecurepassword")
        self.assertNotEqual(hashed, "supersecurepassword")
        self.assertTrue(hashed.startswith("$pbkdf2-sha256$"))
        self.assertTrue(verify_password("supersecurepassword", hashed))
        self.assertFalse(verify_password("incorrect", hashed))

    def test_hashes_are_salted(self) -> None:
        """Two hashes of the same password should differ but both verify."""

        first = hash_password("p1")
        second = hash_password("p1")
        self.assertNotEqual(first, second)
        self.assertTrue(verify_password("p1", first))
        self.assertTrue(verify_password("p1", second))

    def test_empty_password_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            hash_password("")

    def test_malformed_hash_does_not_verify(self) -> None:
        self.assertFalse(verify_password("anything", ""))
        self.assertFalse(verify_password("anything", "not-a-real-hash"))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
