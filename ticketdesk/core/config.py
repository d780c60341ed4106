"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"
    VERSION: str = "0.03.00"

    # Database
    DATABASE_URL: str

    # Session Token (admin-triggered runs)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after

    # Comma-separated admin allow-list
    ADMIN_EMAILS: str = ""

    # Shared secret for scheduled job triggers (X-Job-Token header)
    JOB_TOKEN: str = ""

    # Google OAuth client used to refresh per-account Gmail credentials
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""

    # Organization mail domain; senders on it are internal
    ALLOWED_DOMAIN: str = "vendora.se"

    # Earliest time the ingestion run scans (ISO-8601, naive = UTC)
    SYNC_START_TIME_ISO: str = "2026-02-11T20:00:00"
    MAX_THREADS_PER_ACCOUNT: int = 250

    # Shared queue aliases, used as the classification fallback
    GROUP_MAIL_RMA: str = "rma@vendora.se"
    GROUP_MAIL_FINANCE: str = "invoice@vendora.se"
    GROUP_MAIL_LOGISTICS: str = "logistics@vendora.se"
    GROUP_MAIL_SALES: str = "sales@vendora.se"
    GROUP_MAIL_MARKETING: str = "marketing@vendora.se"
    GROUP_MAIL_SUPPORT: str = "support@vendora.se"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    @property
    def admin_emails_list(self) -> list[str]:
        """Parse ADMIN_EMAILS into lowercase list."""
        return [e.strip().lower() for e in self.ADMIN_EMAILS.split(",") if e.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets

    @property
    def queue_aliases(self) -> dict[str, str]:
        """Queue label -> shared mailbox alias."""
        return {
            "RMA": self.GROUP_MAIL_RMA.lower(),
            "FINANCE": self.GROUP_MAIL_FINANCE.lower(),
            "LOGISTICS": self.GROUP_MAIL_LOGISTICS.lower(),
            "SALES": self.GROUP_MAIL_SALES.lower(),
            "MARKETING": self.GROUP_MAIL_MARKETING.lower(),
            "SUPPORT": self.GROUP_MAIL_SUPPORT.lower(),
        }


settings = Settings()
