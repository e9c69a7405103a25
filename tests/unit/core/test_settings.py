"""Tests for AuthSettings environment loading."""

import pytest

from authtokens.core.settings import AuthSettings


class TestAuthSettings:
    """Tests for defaults and environment aliases."""

    def test_defaults(self) -> None:
        settings = AuthSettings()
        assert settings.project_id == ""
        assert settings.tenant_id is None
        assert settings.http_timeout == 10.0
        assert settings.max_retries == 4
        assert settings.check_revoked is False
        assert settings.emulator is False

    def test_prefixed_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AUTH_PROJECT_ID", "proj-a")
        monkeypatch.setenv("AUTH_SERVICE_ACCOUNT_ID", "sa@proj-a.iam")
        monkeypatch.setenv("AUTH_CHECK_REVOKED", "true")
        settings = AuthSettings()
        assert settings.project_id == "proj-a"
        assert settings.service_account_id == "sa@proj-a.iam"
        assert settings.check_revoked is True

    def test_google_cloud_project_alias(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GOOGLE_CLOUD_PROJECT", "proj-b")
        assert AuthSettings().project_id == "proj-b"

    def test_emulator_host_alias(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FIREBASE_AUTH_EMULATOR_HOST", "localhost:9099")
        settings = AuthSettings()
        assert settings.emulator_host == "localhost:9099"
        assert settings.emulator is True

    def test_blank_emulator_host_is_not_emulator(self) -> None:
        assert AuthSettings(emulator_host="   ").emulator is False

    def test_constructor_kwargs(self) -> None:
        settings = AuthSettings(project_id="proj-c", credentials_file="/tmp/sa.json")
        assert settings.project_id == "proj-c"
        assert settings.credentials_file == "/tmp/sa.json"
