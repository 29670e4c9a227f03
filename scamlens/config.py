from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ==========================================================================
    # ENVIRONMENT
    # ==========================================================================
    environment: str = "dev"  # "dev", "prod"
    debug: bool = True

    # ==========================================================================
    # LLM PROVIDER
    # ==========================================================================
    llm_provider: str = "openai"  # "openai", "gemini"
    llm_temperature: float = 0.2  # Low temperature keeps verdicts consistent
    llm_max_tokens: int = 1000
    llm_timeout_seconds: float = 30.0  # Hard deadline for one model call

    # ==========================================================================
    # OPENAI
    # ==========================================================================
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"

    # ==========================================================================
    # GEMINI
    # ==========================================================================
    gemini_api_key: str = ""
    gemini_model: str = "gemini-1.5-flash"

    # ==========================================================================
    # PAGE FETCHING
    # ==========================================================================
    fetch_timeout_seconds: float = 5.0
    fetch_max_text_chars: int = 3000  # Visible body text kept in the prompt
    fetch_max_form_chars: int = 2000  # Form markup kept in the prompt
    fetch_max_scripts: int = 20
    fetch_user_agent: str = "Mozilla/5.0 (compatible; ScamLens/0.1; +https://github.com/scamlens)"

    # ==========================================================================
    # PROMPT
    # ==========================================================================
    output_language: str = "Vietnamese"

    # ==========================================================================
    # CORS
    # ==========================================================================
    cors_origins: str = "*"  # Comma-separated origins, or "*" for all

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
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def llm_model(self) -> str:
        if self.llm_provider.lower() == "gemini":
            return self.gemini_model
        return self.openai_model


settings = Settings()
