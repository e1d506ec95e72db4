from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Runtime ---
    ENV: str = "dev"  # dev|prod
    CRMSYNC_DB_URL: str = "sqlite+aiosqlite:///./crmsync.db"

    # --- Minimal B2B Auth (API key) ---
    # Send: X-API-Key: <key>
    API_KEY: str | None = None

    # --- Language model (OpenAI) ---
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE_URL: str | None = None
    OPENAI_MODEL: str = "gpt-5"
    OPENAI_QA_MODEL: str = "gpt-5-mini"
    OPENAI_ADVISORY_MODEL: str = "gpt-4o-mini"
    EXTRACTION_MAX_COMPLETION_TOKENS: int = 1600
    ENRICHMENT_QA_ENABLED: bool = True

    # --- Firmographics provider (Apollo) ---
    # "auto" => enabled whenever a key resolves; "false"/"off"/"0" force-disables
    ENABLE_APOLLO: str = "auto"
    APOLLO_API_KEY: str | None = None
    APOLLO_BASE_URL: str = "https://api.apollo.io/api/v1"

    # --- URL discovery (search API) ---
    SERP_API_KEY: str | None = None
    SERP_BASE_URL: str = "https://serpapi.com/search.json"

    # --- Source fetching ---
    SOURCE_MAX_CHARS: int = 10000
    SOURCE_USER_AGENT: str = "crmsync/1.0 (+enrichment)"

    # --- Shared HTTP resilience knobs ---
    HTTP_TIMEOUT_S: float = 20.0
    HTTP_MAX_RETRIES: int = 2
    HTTP_BACKOFF_BASE_S: float = 0.5
    HTTP_RATE_LIMIT_RPS: float = 5.0
    HTTP_CIRCUIT_FAIL_THRESHOLD: int = 8
    HTTP_CIRCUIT_RESET_S: float = 60.0

    # --- Merge ---
    MERGE_MAX_ATTEMPTS: int = 3

    # --- Advisory cache windows (seconds) ---
    ADVISORY_RESULT_TTL_S: int = 6 * 3600
    ADVISORY_RECENT_TTL_S: int = 2 * 3600
    ADVISORY_RATE_LIMIT_TTL_S: int = 3600
    ADVISORY_DEDUPE_TTL_S: int = 10 * 60

    # --- Batch enrichment throttling ---
    ENRICHMENT_WEEKLY_LIMIT: int = 300
    ENRICHMENT_DEFAULT_STALENESS_DAYS: int = 7
    ENRICHMENT_BATCH_DELAY_S: float = 0.25
    ENRICHMENT_ON_DEMAND_DELAY_S: float = 0.5
    ENRICHMENT_MAX_TENANTS: int = 50

    # --- Scheduler tuning ---
    SCHED_ENRICH_DAY_OF_WEEK: str = "sun"
    SCHED_ENRICH_HOUR: int = 2

    def apollo_wanted(self) -> bool:
        v = (self.ENABLE_APOLLO or "auto").strip().lower()
        return v not in ("false", "0", "off")


settings = Settings()
