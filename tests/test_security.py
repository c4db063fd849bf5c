from __future__ import annotations

import unittest
from unittest.mock import patch

from jose import jwt

from app.errors import ApiError
from app.security import actor_from_claims, decode_token
from app.settings import Settings

SECRET = "test-secret"


def _settings(**overrides) -> Settings:  # type: ignore[no-untyped-def]
    values = {"jwt_secret": SECRET, "jwt_audience": "authenticated"}
    values.update(overrides)
    return Settings(**values)


class DecodeTokenTests(unittest.TestCase):
    @patch("app.security.get_settings")
    def test_valid_token_yields_actor(self, mock_settings) -> None:
        mock_settings.return_value = _settings()
        token = jwt.encode({"sub": "42", "aud": "authenticated", "org_id": 3}, SECRET, algorithm="HS256")

        actor = actor_from_claims(decode_token(token))

        self.assertEqual(actor.user_id, 42)
        self.assertEqual(actor.org_id, 3)

    @patch("app.security.get_settings")
    def test_wrong_secret_is_rejected(self, mock_settings) -> None:
        mock_settings.return_value = _settings()
        token = jwt.encode({"sub": "42", "aud": "authenticated"}, "other-secret", algorithm="HS256")

        with self.assertRaises(ApiError) as ctx:
            decode_token(token)

        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(ctx.exception.code, "INVALID_TOKEN")

    @patch("app.security.get_settings")
    def test_unconfigured_secret_rejects_everything(self, mock_settings) -> None:
        mock_settings.return_value = _settings(jwt_secret="")

        with self.assertRaises(ApiError):
            decode_token("anything")

    def test_non_numeric_subject_is_rejected(self) -> None:
        with self.assertRaises(ApiError):
            actor_from_claims({"sub": "user-abc"})


if __name__ == "__main__":
    unittest.main()
