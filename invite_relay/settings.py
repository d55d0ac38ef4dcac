from enum import Enum
from typing import Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from invite_relay.worker.retry import RetryPolicy

INVITE_URL_TEMPLATE = "https://{org}.slack.com/api/users.admin.invite"


class LogLevel(str, Enum):
    """Supported logging levels."""

    CRITICAL = "CRITICAL"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"
    DEBUG = "DEBUG"
    NOTSET = "NOTSET"


class SettingModel(BaseSettings):
    """
    Configuration model for the invite relay.
    Loads values from environment variables or a .env file.

    The model is frozen: it is loaded once at startup and handed to the relay
    and the web app explicitly.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    # Inbound shared secrets
    form_verification_token: SecretStr
    slack_verification_token: SecretStr
    slack_signing_secret: Optional[SecretStr] = Field(default=None)

    # Outbound endpoints and credentials
    slack_webhook_url: str
    slack_org_name: Optional[str] = Field(default=None)
    slack_invite_url: Optional[str] = Field(default=None)
    slack_access_token: SecretStr

    # Delivery pipeline
    queue_capacity: int = Field(default=1000, ge=1)
    admission_timeout: Optional[float] = Field(default=5.0)
    retry_max_attempts: int = Field(default=5, ge=0)
    retry_base_delay: float = Field(default=1.0, ge=0)
    retry_max_delay: float = Field(default=60.0, ge=0)
    retry_jitter: bool = Field(default=True)
    retry_server_errors: bool = Field(default=True)
    shutdown_drain_timeout: float = Field(default=10.0, ge=0)
    http_timeout: float = Field(default=10.0, gt=0)

    # Logging settings
    log_level: LogLevel = Field(default=LogLevel.INFO)
    log_file: Optional[str] = Field(default=None)
    log_dir: str = Field(default="logs")
    log_format: str = Field(default="%(asctime)s [%(levelname)8s] %(name)s: %(message)s")

    # Web server CORS settings
    cors_allow_origins: str = Field(default="*")
    cors_allow_methods: str = Field(default="*")
    cors_allow_headers: str = Field(default="*")

    @field_validator("admission_timeout", mode="before")
    @classmethod
    def parse_admission_timeout(cls, v):
        """Treat an empty or zero timeout as "wait forever"."""
        if v is None:
            return None
        if isinstance(v, str) and not v.strip():
            return None
        if float(v) <= 0:
            return None
        return float(v)

    @field_validator("cors_allow_origins", "cors_allow_methods", "cors_allow_headers", mode="before")
    @classmethod
    def parse_cors_list(cls, v):
        """Parse CORS values from string."""
        if isinstance(v, str):
            # Handle empty string
            if not v.strip():
                return "*"
            return v.strip()
        return v or "*"

    @model_validator(mode="after")
    def check_invite_target(self) -> "SettingModel":
        if not self.slack_invite_url and not self.slack_org_name:
            raise ValueError("Either SLACK_INVITE_URL or SLACK_ORG_NAME must be set")
        return self

    @property
    def invite_url(self) -> str:
        """Resolved invite endpoint; an explicit URL wins over the org name."""
        if self.slack_invite_url:
            return self.slack_invite_url
        return INVITE_URL_TEMPLATE.format(org=self.slack_org_name)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            jitter=self.retry_jitter,
        )

    @staticmethod
    def split_csv(value: str) -> list[str]:
        return [part.strip() for part in value.split(",") if part.strip()]

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """
        Customize the settings sources to prioritize .env file over environment variables.
        This matches the behavior of load_dotenv(override=True) in the CLI entry point.
        """
        return init_settings, dotenv_settings, env_settings, file_secret_settings


_settings: Optional[SettingModel] = None


def get_settings(
    env_file: Optional[str] = ".env", no_env_file: bool = False, force_reload: bool = False, **kwargs
) -> SettingModel:
    """
    Load the settings once and cache them.

    Parameters
    ----------
    env_file : Optional[str], optional
        Path to the .env file, by default ".env"
    no_env_file : bool, optional
        Whether to skip loading the .env file, by default False
    force_reload : bool, optional
        Whether to force a reload of the settings, by default False
    **kwargs
        Additional settings to override

    Returns
    -------
    SettingModel
        The settings instance

    Raises
    ------
    pydantic.ValidationError
        If a required secret or endpoint is missing
    """
    global _settings

    if _settings is None or force_reload:
        actual_env_file = None if no_env_file else env_file
        _settings = SettingModel(_env_file=actual_env_file, **kwargs)
    return _settings
