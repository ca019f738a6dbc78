from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Per-user store actor (sessions, holds, constraints, history)
    USER_GRAPH_URL: str = "http://user-graph.internal"
    STORE_REQUEST_TIMEOUT: float = 10.0

    # Remote constraint solver. Unset means the local solver is always used.
    SOLVER_ENDPOINT: str | None = None
    REMOTE_SOLVER_TIMEOUT: float = 30.0

    # Outbound write queue
    REDIS_URL: str = "redis://localhost:6379/0"
    WRITE_QUEUE_KEY: str = "write-queue"

    # Scheduling defaults
    DEFAULT_MAX_CANDIDATES: int = 5

    # Participant pseudonymization
    HASHING_SECRET: str | None = None

    # API auth
    AUTH_JWKS_URL: str = "http://localhost:8000/.well-known/jwks.json"
    AUTH_AUDIENCE: str = "authenticated"

    # =================================================================
    # HOLD EXPIRY SWEEP
    # =================================================================
    HOLD_SWEEP_INTERVAL_MINUTES: int = 15
    HOLD_SWEEP_USER_IDS: str = ""  # comma separated

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def solver_endpoint(self) -> str | None:
        """Remote solver endpoint, or None when not configured."""
        if self.SOLVER_ENDPOINT and self.SOLVER_ENDPOINT.strip():
            return self.SOLVER_ENDPOINT.strip()
        return None

    def hold_sweep_user_ids(self) -> list[str]:
        """Users whose holds the periodic sweep reconciles."""
        return [uid.strip() for uid in self.HOLD_SWEEP_USER_IDS.split(",") if uid.strip()]

    def get_store_client_config(self) -> dict:
        """
        HTTP client configuration for the store actor.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "base_url": self.USER_GRAPH_URL.rstrip("/"),
            "timeout": self.STORE_REQUEST_TIMEOUT,
        }

        if self.environment == "development":
            # Local actors answer quickly; fail fast
            config.update({"timeout": min(self.STORE_REQUEST_TIMEOUT, 5.0)})

        return config


settings = Settings()
