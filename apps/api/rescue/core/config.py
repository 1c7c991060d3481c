"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str = "sqlite:///./rescue.db"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Public base URL as Twilio sees it (used to rebuild the signed URL behind a proxy)
    PUBLIC_BASE_URL: str = ""

    # Gemini
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.0-flash-exp"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    AI_CONNECT_TIMEOUT: float = 10.0
    AI_READ_TIMEOUT: float = 60.0
    IMAGE_FETCH_TIMEOUT: float = 10.0
    MAX_IMAGE_BYTES: int = 5 * 1024 * 1024  # 5 MB

    # Assistant kill switch
    AI_ASSISTANT_DISABLED: bool = False
    AI_ASSISTANT_DISABLED_MESSAGE: str = (
        "The assistant is currently disabled. Please try again later."
    )

    # Twilio Studio (outbound vet call)
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_PHONE_NUMBER: str = ""  # Caller ID (From)
    TWILIO_FLOW_SID: str = ""
    TWILIO_STUDIO_BASE_URL: str = "https://studio.twilio.com/v2"
    TWILIO_TIMEOUT: float = 60.0
    VET_PHONE_NUMBER: str = ""  # Callee (To)
    SKIP_TWILIO_VERIFICATION: bool = False  # Ignored in production
    APPOINTMENT_TEST_MODE: bool = False  # Set to True to skip real calls

    # Worker
    WORKER_POLL_INTERVAL: int = 10
    WORKER_BATCH_SIZE: int = 10
    WORKER_CONCURRENCY: int = 4

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() in ("prod", "production")

    @property
    def twilio_verification_enabled(self) -> bool:
        """Signature checks can only be skipped outside production."""
        if self.is_production:
            return True
        return not self.SKIP_TWILIO_VERIFICATION


settings = Settings()
