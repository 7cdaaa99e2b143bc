"""Authentication dependency, adapter and OpenAPI contract tests."""

from __future__ import annotations

import os
import tempfile
import unittest

from fastapi import Request
from fastapi.testclient import TestClient

from app.adapters.auth.base import AuthVerificationError
from app.adapters.auth.mock_auth import MockTokenVerifier
from app.adapters.auth.session_tokens import SessionTokenVerifier
from app.core.config import Settings, get_settings
from app.main import create_app
from app.repositories.memory import InMemoryStore
from app.routes.dependencies import get_file_service, get_token_verifier
from app.schemas.audio_file import AudioFileStats


class _CapturingFileService:
    def __init__(self) -> None:
        self.calls: list[str] = []

    def stats(self, *, owner_id: str) -> AudioFileStats:
        self.calls.append(owner_id)
        return AudioFileStats(total_files=0, total_size=0, average_size=0.0)


class _SettingsEnvCase(unittest.TestCase):
    _env_keys = (
        "VOCALI_AUTH_PROVIDER",
        "VOCALI_SPEECH_PROVIDER",
        "VOCALI_UPLOAD_DIR",
        "VOCALI_DATABASE_URL",
        "VOCALI_S3_BUCKET",
    )

    def setUp(self) -> None:
        self._old_env = {k: os.environ.get(k) for k in self._env_keys}
        self._tmp = tempfile.TemporaryDirectory()
        os.environ["VOCALI_AUTH_PROVIDER"] = "mock"
        os.environ["VOCALI_SPEECH_PROVIDER"] = "mock"
        os.environ["VOCALI_UPLOAD_DIR"] = self._tmp.name
        os.environ.pop("VOCALI_DATABASE_URL", None)
        os.environ.pop("VOCALI_S3_BUCKET", None)
        get_settings.cache_clear()

    def tearDown(self) -> None:
        for key, value in self._old_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        get_settings.cache_clear()
        self._tmp.cleanup()


class AuthDependencyTests(_SettingsEnvCase):
    def test_openapi_lists_routes_and_contract_response_codes(self) -> None:
        client = TestClient(create_app())

        response = client.get("/openapi.json")
        self.assertEqual(response.status_code, 200)
        paths = response.json()["paths"]

        for path in (
            "/api/health",
            "/api/auth/register",
            "/api/auth/login",
            "/api/auth/logout",
            "/api/auth/logout-all",
            "/api/auth/me",
            "/api/users/profile",
            "/api/users/change-password",
            "/api/users/deactivate",
            "/api/files",
            "/api/files/stats",
            "/api/files/{fileId}",
            "/api/files/{fileId}/download",
            "/api/files/{fileId}/content",
            "/api/transcriptions",
            "/api/transcriptions/upload",
            "/api/transcriptions/stats",
            "/api/transcriptions/file/{fileId}",
            "/api/transcriptions/file/{fileId}/retry",
            "/api/transcriptions/{transcriptionId}",
        ):
            self.assertIn(path, paths)

        upload = paths["/api/transcriptions/upload"]["post"]["responses"]
        self.assertEqual(set(upload.keys()), {"201", "400", "401", "413"})
        content = paths["/api/files/{fileId}/content"]["get"]["responses"]
        self.assertEqual(set(content.keys()), {"200", "307", "400", "401", "404"})
        retry = paths["/api/transcriptions/file/{fileId}/retry"]["post"]["responses"]
        self.assertEqual(set(retry.keys()), {"202", "400", "401", "404"})
        self.assertEqual(
            retry["400"]["content"]["application/json"]["schema"]["$ref"],
            "#/components/schemas/RetryStateConflictError",
        )
        self.assertEqual(
            paths["/api/files/{fileId}"]["get"]["responses"]["404"]["content"]["application/json"]["schema"]["$ref"],
            "#/components/schemas/NoLeakNotFoundError",
        )

    def test_missing_authorization_header_returns_401_and_no_side_effect(self) -> None:
        app = create_app()
        client = TestClient(app)

        response = client.post(
            "/api/transcriptions/upload",
            files={"audio": ("clip.mp3", b"ID3", "audio/mpeg")},
        )

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {"code": "UNAUTHORIZED", "message": "Access token required"})
        self.assertEqual(app.state.store.audio_file_write_count, 0)
        self.assertEqual(app.state.store.transcription_write_count, 0)

    def test_invalid_bearer_token_returns_401(self) -> None:
        client = TestClient(create_app())

        response = client.get("/api/files", headers={"Authorization": "Bearer not-a-valid-token"})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {"code": "UNAUTHORIZED", "message": "Invalid bearer token"})

    def test_valid_bearer_token_resolves_user_id_for_downstream_handler(self) -> None:
        app = create_app()
        client = TestClient(app)
        capturing_service = _CapturingFileService()
        app.dependency_overrides[get_file_service] = lambda: capturing_service

        response = client.get("/api/files/stats", headers={"Authorization": "Bearer test:user-123"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(capturing_service.calls, ["user-123"])

    def test_auth_principal_is_attached_to_request_state(self) -> None:
        app = create_app()
        client = TestClient(app)
        capturing_service = _CapturingFileService()
        observed: dict[str, str] = {}

        def _override_file_service(request: Request) -> _CapturingFileService:
            observed["user_id"] = request.state.auth_principal.user_id
            observed["correlation_id"] = request.state.correlation_id
            return capturing_service

        app.dependency_overrides[get_file_service] = _override_file_service

        response = client.get(
            "/api/files/stats",
            headers={"Authorization": "Bearer test:user-state", "X-Correlation-Id": "corr-42"},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(observed, {"user_id": "user-state", "correlation_id": "corr-42"})

    def test_health_is_public(self) -> None:
        response = TestClient(create_app()).get("/api/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})


class TokenVerifierAdapterTests(unittest.TestCase):
    def test_mock_verifier_accepts_test_tokens_only(self) -> None:
        verifier = MockTokenVerifier()

        principal = verifier.verify_token("test:user-9:admin")
        self.assertEqual(principal.user_id, "user-9")
        self.assertEqual(principal.role, "admin")
        self.assertEqual(verifier.verify_token("test:user-9").role, "user")

        for token in ("user-9", "test:", "prod:user-9", "test:user-9:admin:extra"):
            with self.subTest(token=token):
                with self.assertRaises(AuthVerificationError):
                    verifier.verify_token(token)

    def test_provider_selection_follows_settings(self) -> None:
        store = InMemoryStore()

        mock = get_token_verifier(Settings(auth_provider="mock"), store)
        session = get_token_verifier(Settings(auth_provider="session", jwt_secret="s"), store)

        self.assertIsInstance(mock, MockTokenVerifier)
        self.assertIsInstance(session, SessionTokenVerifier)


if __name__ == "__main__":
    unittest.main()
