from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Runtime ---
    ENV: str = "dev"  # dev|prod
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = "*"

    # --- Minimal B2B Auth (API key) for debug routes ---
    # Send: X-API-Key: <key>
    API_KEY: str | None = None

    # --- Listings provider (Zillow via RapidAPI) ---
    RAPIDAPI_KEY: str | None = None
    RAPIDAPI_HOST: str = "zillow-com1.p.rapidapi.com"
    LISTINGS_TIMEOUT_S: float = 10.0

    # --- Satellite imagery (Google Static Maps) ---
    GOOGLE_MAPS_API_KEY: str | None = None
    IMAGERY_BASE_URL: str = "https://maps.googleapis.com/maps/api/staticmap"
    IMAGERY_ZOOM: int = 21
    IMAGERY_SIZE_PX: int = 600
    IMAGERY_TIMEOUT_S: float = 10.0

    # --- Vision providers, in fallback order ---
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o"
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"

    GROQ_API_KEY: str | None = None
    GROQ_MODEL: str = "llama-3.2-90b-vision-preview"
    GROQ_BASE_URL: str = "https://api.groq.com/openai/v1"

    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-1.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"

    VISION_TIMEOUT_S: float = 30.0
    VISION_MAX_TOKENS: int = 1024
    VISION_TEMPERATURE: float = 0.2

    # --- Outbound HTTP resilience ---
    HTTP_MAX_RETRIES: int = 1
    HTTP_BACKOFF_BASE_S: float = 0.5
    HTTP_RATE_LIMIT_RPS: float = 0.0  # 0 disables
    HTTP_CIRCUIT_FAIL_THRESHOLD: int = 5
    HTTP_CIRCUIT_RESET_S: float = 60.0

    # --- In-memory cache ---
    CACHE_DEFAULT_TTL_S: int = 3600
    VISION_CACHE_TTL_S: int = 1800
    SEARCH_CACHE_TTL_S: int = 3600
    BATCH_CACHE_TTL_S: int = 3600
    CACHE_SWEEP_INTERVAL_S: int = 60

    # --- Batch pipeline tuning ---
    LEAD_BUFFER: int = 15
    RESULTS_PER_BAND: int = 20
    VISION_CONCURRENCY: int = 5

    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
