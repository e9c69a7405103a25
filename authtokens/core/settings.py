"""Settings for token minting and verification, loaded from the environment."""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

HTTP_TIMEOUT_DEFAULT = 10.0
MAX_RETRIES_DEFAULT = 4


class AuthSettings(BaseSettings):
    """Project, credential and emulator settings."""

    model_config = SettingsConfigDict(env_prefix="AUTH_", populate_by_name=True)

    project_id: str = Field(
        default="",
        validation_alias=AliasChoices(
            "AUTH_PROJECT_ID", "GOOGLE_CLOUD_PROJECT", "GCLOUD_PROJECT"
        ),
    )
    service_account_id: str = ""
    credentials_file: str = Field(
        default="",
        validation_alias=AliasChoices(
            "AUTH_CREDENTIALS_FILE", "GOOGLE_APPLICATION_CREDENTIALS"
        ),
    )
    tenant_id: str | None = None
    emulator_host: str = Field(
        default="",
        validation_alias=AliasChoices(
            "AUTH_EMULATOR_HOST", "FIREBASE_AUTH_EMULATOR_HOST"
        ),
    )
    http_timeout: float = HTTP_TIMEOUT_DEFAULT
    max_retries: int = MAX_RETRIES_DEFAULT
    check_revoked: bool = False

    @property
    def emulator(self) -> bool:
        """True when an auth emulator host is configured."""
        return bool(self.emulator_host.strip())
