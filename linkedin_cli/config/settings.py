"""LinkedIn CLI configuration."""
from pathlib import Path
from typing import Optional

from pydantic import HttpUrl, SecretStr, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CREDENTIALS_FILE = Path.home() / ".linkedincli"


class ConfigurationError(Exception):
    """Raised when required configuration is missing or inconsistent."""
    pass


class Settings(BaseSettings):
    """Application settings.

    Built explicitly with :func:`load_settings` and passed to every component;
    there is no module-level instance.
    """

    # LinkedIn OAuth Settings
    LINKEDIN_CLIENT_ID: SecretStr = Field(
        default=SecretStr(""),
        description="LinkedIn OAuth Client ID"
    )
    LINKEDIN_CLIENT_SECRET: SecretStr = Field(
        default=SecretStr(""),
        description="LinkedIn OAuth Client Secret"
    )

    # Stored credential (written by the login flow)
    LINKEDIN_TOKEN: Optional[SecretStr] = Field(
        default=None,
        description="LinkedIn access token"
    )
    LINKEDIN_USERNAME: Optional[str] = Field(
        default=None,
        description="LinkedIn member id (OIDC 'sub') used as post author"
    )

    # API Endpoints
    LINKEDIN_API_BASE_URL: HttpUrl = Field(
        default="https://api.linkedin.com",
        description="LinkedIn REST API base URL"
    )
    LINKEDIN_AUTH_URL: HttpUrl = Field(
        default="https://www.linkedin.com/oauth/v2/authorization",
        description="LinkedIn OAuth authorization endpoint"
    )
    LINKEDIN_TOKEN_URL: HttpUrl = Field(
        default="https://www.linkedin.com/oauth/v2/accessToken",
        description="LinkedIn OAuth token endpoint"
    )
    LINKEDIN_USERINFO_PATH: str = "/v2/userinfo"
    LINKEDIN_POSTS_PATH: str = "/rest/posts"

    # OAuth Scopes
    LINKEDIN_SCOPES: list[str] = [
        "profile",  # Basic profile access
        "email",  # Email address access
        "w_member_social",  # Required for posting
        "r_profile_basicinfo",
        "r_verify",
        "openid",  # For authentication
    ]

    # API Version Headers
    LINKEDIN_VERSION: str = "202501"  # LinkedIn API version
    RESTLI_PROTOCOL_VERSION: str = "2.0.0"  # Rest.li protocol version

    # Local OAuth callback listener
    CALLBACK_HOST: str = "localhost"
    CALLBACK_PORT: int = 8080
    CALLBACK_PATH: str = "/oauth/callback/linkedin"
    LOGIN_PATH: str = "/login"

    # Seconds; None disables the timeout
    REQUEST_TIMEOUT: Optional[float] = 30.0

    # Credential store location
    CREDENTIALS_FILE: Path = DEFAULT_CREDENTIALS_FILE

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=DEFAULT_CREDENTIALS_FILE,
        case_sensitive=True,
        validate_default=True,
        extra="ignore"  # Ignore extra environment variables
    )

    @property
    def formatted_scopes(self) -> str:
        """Get properly formatted scope string."""
        return " ".join(self.LINKEDIN_SCOPES)

    @property
    def callback_base_url(self) -> str:
        return f"http://{self.CALLBACK_HOST}:{self.CALLBACK_PORT}"

    @property
    def redirect_uri(self) -> str:
        """OAuth redirect URI registered with the LinkedIn app."""
        return f"{self.callback_base_url}{self.CALLBACK_PATH}"

    @property
    def login_url(self) -> str:
        return f"{self.callback_base_url}{self.LOGIN_PATH}"

    @property
    def access_token(self) -> Optional[str]:
        if self.LINKEDIN_TOKEN is None:
            return None
        return self.LINKEDIN_TOKEN.get_secret_value() or None

    def require_client_credentials(self) -> tuple[str, str]:
        """Return the OAuth client id and secret, failing if either is unset."""
        client_id = self.LINKEDIN_CLIENT_ID.get_secret_value()
        client_secret = self.LINKEDIN_CLIENT_SECRET.get_secret_value()
        if not client_id:
            raise ConfigurationError(
                f"LINKEDIN_CLIENT_ID must be set in environment variables or {self.CREDENTIALS_FILE}"
            )
        if not client_secret:
            raise ConfigurationError(
                f"LINKEDIN_CLIENT_SECRET must be set in environment variables or {self.CREDENTIALS_FILE}"
            )
        return client_id, client_secret


def load_settings(credentials_file: Optional[Path] = None, **overrides) -> Settings:
    """Build settings from the environment and the credentials dotfile.

    Explicit ``overrides`` win over environment variables, which win over the
    dotfile.
    """
    path = Path(credentials_file).expanduser() if credentials_file else DEFAULT_CREDENTIALS_FILE
    overrides.setdefault("CREDENTIALS_FILE", path)
    return Settings(_env_file=path, **overrides)
