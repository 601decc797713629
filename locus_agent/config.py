from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Model provider: "anthropic" | "openai_compatible" | "google"
    llm_provider: str = "anthropic"
    llm_model: str = "claude-sonnet-4-6"
    llm_temperature: float = 0.7
    llm_max_tokens: int = 8192
    llm_request_timeout_seconds: float = 90.0

    # Anthropic
    anthropic_api_key: str = ""

    # OpenAI-compatible (OpenAI itself or a local vLLM endpoint)
    openai_base_url: str = ""
    openai_api_key: str = ""

    # Google Gemini
    google_api_key: str = ""

    # Database (PostgreSQL) for session snapshots; empty disables persistence
    database_url: str = ""

    # Locus REST API; empty falls back to in-memory providers for local dev
    locus_api_url: str = ""
    locus_api_key: str = ""

    # CORS
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # Security
    locus_agent_api_key: str = ""  # If set, require X-API-Key header on all requests

    # Agent limits
    agent_timeout_seconds: int = 120
    max_concurrent_agent_runs: int = 5
    max_tool_steps: int = 5
    history_window: int = 5
    intent_confidence_threshold: float = 0.4
    passive_manifest_updates: bool = True

    @field_validator("llm_temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        if not 0.0 <= v <= 2.0:
            raise ValueError("LLM_TEMPERATURE must be between 0.0 and 2.0")
        return v

    @field_validator("max_tool_steps")
    @classmethod
    def validate_max_tool_steps(cls, v: int) -> int:
        if v < 1:
            raise ValueError("MAX_TOOL_STEPS must be at least 1")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
