from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Optional: without a key image analysis degrades to the fallback payload
    OPENAI_API_KEY: str | None = None

    # Model Configuration
    OPENAI_VISION_MODEL: str = "gpt-4o"

    # Generation Parameters
    LLM_TEMPERATURE: float = 0.3
    LLM_MAX_TOKENS: int = 1000
    MAX_RETRIES: int = 2

    # Database Configuration
    # Absent -> consultations are kept in memory (mock mode)
    DATABASE_URL: str | None = None

    # Portal integration
    PORTAL_WEBHOOK_URL: str = "https://eteaportal.engageiobots.com/api/webhooks/nailsurgery"
    WEBHOOK_SECRET: str = ""
    SETTINGS_URL: str = "https://footcareclinicadmin.engageiobots.com/api/chatbot-settings"
    SETTINGS_TTL_SECONDS: float = 300.0
    SETTINGS_REFRESH_ENABLED: bool = False
    # After a failed fetch, keep serving the cached value this long before retrying
    SETTINGS_RETRY_SECONDS: float = 30.0

    # Upper bounds for calls on the critical path of a transition
    ANALYSIS_TIMEOUT_SECONDS: float = 12.0
    STORE_TIMEOUT_SECONDS: float = 10.0
    WEBHOOK_TIMEOUT_SECONDS: float = 15.0
    SETTINGS_TIMEOUT_SECONDS: float = 10.0

    # Clinic identity stamped on stored and forwarded records
    CLINIC_SOURCE: str = "nailsurgery"
    CLINIC_GROUP: str = "The Nail Surgery Clinic"
    CLINIC_DOMAIN: str = "nailsurgeryclinic.engageiobots.com"
    PREFERRED_CLINIC: str = "Nail Surgery Clinic"

    # Honour per-step typing delays (widget demo mode); off for the API
    PACE_TRANSITIONS: bool = False

    # Sessions with no activity for this long are dropped from the registry
    SESSION_IDLE_TTL_SECONDS: float = 1800.0

    LOG_LEVEL: str = "INFO"

    # Loads from a .env file in the root directory
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

# Singleton instance
settings = Settings()
