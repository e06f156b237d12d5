from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ==========================================================================
    # ENVIRONMENT
    # ==========================================================================
    environment: str = "dev"  # "dev", "prod"
    debug: bool = True

    # ==========================================================================
    # DATABASE
    # ==========================================================================
    database_url: str = "sqlite:///./feedbackhub.db"

    # ==========================================================================
    # OPENAI
    # ==========================================================================
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_timeout: float = 10.0  # Seconds before the AI call counts as failed
    openai_max_tokens: int = 500

    # ==========================================================================
    # CLASSIFICATION
    # ==========================================================================
    classifier_enabled: bool = True  # False = keyword fallback only
    classifier_max_content_length: int = 5000

    # ==========================================================================
    # FEEDBACK INPUT
    # ==========================================================================
    feedback_max_length: int = 2000
    notes_max_length: int = 1000
    email_max_length: int = 254

    # ==========================================================================
    # API SECURITY
    # ==========================================================================
    api_token: str = ""  # Required in production, optional in dev
    api_token_header: str = "X-API-Key"
    user_id_header: str = "X-User-Id"  # Tenant id forwarded by the auth proxy

    # ==========================================================================
    # RATE LIMITING
    # ==========================================================================
    rate_limit_requests: int = 60  # Max requests per window
    rate_limit_window: int = 60  # Window in seconds (60 = per minute)
    widget_rate_limit_requests: int = 5  # Widget submissions per IP per window
    project_rate_limit_requests: int = 10  # Widget submissions per project+IP per window

    # ==========================================================================
    # CORS
    # ==========================================================================
    cors_origins: str = "*"  # Comma-separated origins, or "*" for all

    # ==========================================================================
    # USAGE
    # ==========================================================================
    approaching_limit_threshold: float = 0.9  # Fraction of feedback limit

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "prod"

    @property
    def cors_origins_list(self) -> list:
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]


settings = Settings()
