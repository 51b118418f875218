from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List

from whmcs_assistant.core.exceptions import ConfigurationException

DEFAULT_WEBHOOK_SECRET = "default-secret-change-in-production"

REQUIRED_SETTINGS = (
    "OPENAI_API_KEY",
    "OPENAI_ASSISTANT_ID",
    "WHMCS_API_URL",
    "WHMCS_IDENTIFIER",
    "WHMCS_SECRET",
    "WHATICKET_URL",
    "WHATICKET_TOKEN",
)


class Settings(BaseSettings):
    PROJECT_NAME: str = "WHMCS Assistant"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"
    CORS_ORIGIN: str = "*"

    OPENAI_API_KEY: str = ""
    OPENAI_ASSISTANT_ID: str = ""
    OPENAI_ORGANIZATION_ID: str = ""
    OPENAI_MAX_RETRIES: int = 3
    OPENAI_TIMEOUT: float = 30.0
    ASSISTANT_POLL_INTERVAL: float = 1.0
    ASSISTANT_MAX_POLL_ATTEMPTS: int = 30

    WHMCS_API_URL: str = ""
    WHMCS_IDENTIFIER: str = ""
    WHMCS_SECRET: str = ""
    WHMCS_TIMEOUT: float = 30.0
    WHMCS_DEFAULT_DEPARTMENT_ID: str = ""

    WHATICKET_URL: str = ""
    WHATICKET_TOKEN: str = ""

    WEBHOOK_SECRET: str = DEFAULT_WEBHOOK_SECRET
    WEBHOOK_REQUIRE_SIGNATURE: bool = False
    MAX_REQUEST_SIZE: int = 10 * 1024 * 1024

    REDIS_URL: str = ""
    CACHE_TTL: int = 300

    SUPPORT_PHONE: str = "(11) 3333-4444"
    SUPPORT_EMAIL: str = "suporte@empresa.com"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def webhook_secret_enabled(self) -> bool:
        return bool(self.WEBHOOK_SECRET) and self.WEBHOOK_SECRET != DEFAULT_WEBHOOK_SECRET

    @property
    def whmcs_base_url(self) -> str:
        """WHMCS installation root, derived from the API endpoint."""
        url = self.WHMCS_API_URL.rstrip("/")
        for suffix in ("/includes/api.php", "/api.php"):
            if url.endswith(suffix):
                return url[: -len(suffix)]
        return url

    def missing_required(self) -> List[str]:
        return [name for name in REQUIRED_SETTINGS if not getattr(self, name)]

    def validate_required(self) -> None:
        """Fail fast at boot when required configuration is absent or malformed."""
        missing = self.missing_required()
        if missing:
            raise ConfigurationException(
                f"Missing required env variables: {', '.join(missing)}",
                details={"missing": missing},
            )
        if not self.OPENAI_API_KEY.startswith("sk-"):
            raise ConfigurationException('OPENAI_API_KEY must start with "sk-"')
        if not self.OPENAI_ASSISTANT_ID.startswith("asst_"):
            raise ConfigurationException('OPENAI_ASSISTANT_ID must start with "asst_"')


@lru_cache()
def get_settings() -> Settings:
    return Settings()
