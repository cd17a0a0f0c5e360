import unittest
from datetime import datetime, timedelta, timezone

import jwt

from road_report.auth import AuthConfigError, AuthError, TokenIssuer, bearer_token, hash_password, verify_password
from road_report.store import ROLE_ADMIN, UserAccount


def _user(role: str = ROLE_ADMIN) -> UserAccount:
    return UserAccount(id="abc123", name="R", email="r@example.com", password_hash="x", role=role)


class TestPasswords(unittest.TestCase):
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("secret1", rounds=4)
        self.assertTrue(hashed.startswith("$2"))
        self.assertTrue(verify_password("secret1", hashed))
        self.assertFalse(verify_password("secret2", hashed))

    def test_garbage_hash_does_not_verify(self) -> None:
        self.assertFalse(verify_password("secret1", "plain-text"))


class TestTokens(unittest.TestCase):
    def test_round_trip_claims(self) -> None:
        issuer = TokenIssuer("s3cret")
        claims = issuer.verify(issuer.issue(_user()))
        self.assertEqual((claims.user_id, claims.role), ("abc123", "admin"))

    def test_token_lasts_one_day_by_default(self) -> None:
        token = TokenIssuer("s3cret").issue(_user())
        payload = jwt.decode(token, "s3cret", algorithms=["HS256"])
        self.assertEqual(payload["exp"] - payload["iat"], 86400)

    def test_expired_token(self) -> None:
        issuer = TokenIssuer("s3cret", ttl_seconds=60)
        token = issuer.issue(_user(), now=datetime.now(timezone.utc) - timedelta(hours=1))
        with self.assertRaises(AuthError):
            issuer.verify(token)

    def test_wrong_secret(self) -> None:
        token = TokenIssuer("one").issue(_user())
        with self.assertRaises(AuthError):
            TokenIssuer("two").verify(token)

    def test_unknown_role_claim(self) -> None:
        token = jwt.encode(
            {"id": "abc", "role": "root", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            "s3cret",
            algorithm="HS256",
        )
        with self.assertRaises(AuthError):
            TokenIssuer("s3cret").verify(token)

    def test_no_secret(self) -> None:
        with self.assertRaises(AuthConfigError):
            TokenIssuer(None).issue(_user())


class TestBearerToken(unittest.TestCase):
    def test_parse(self) -> None:
        self.assertEqual(bearer_token("Bearer abc.def"), "abc.def")
        self.assertEqual(bearer_token("bearer  abc"), "abc")
        for bad in (None, "", "Basic abc", "Bearer", "Bearer   "):
            with self.subTest(value=bad):
                with self.assertRaises(AuthError):
                    bearer_token(bad)


if __name__ == "__main__":
    unittest.main()
