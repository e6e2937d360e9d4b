from pydantic_settings import BaseSettings


class Config(BaseSettings):
    """Application configuration loaded from environment variables."""

    # Required: startup fails when any of these is missing
    api_key: str  # Key sent to the game API with every stage request
    ranking_url: str  # Ranking endpoint of the game backend
    game_api_base_url: str  # Base URL of the game API, e.g. https://game.example.com/api

    host: str = "127.0.0.1"
    port: int = 3000
    debug: bool = False
    cors_origins: list[str] = []
    session_server_url: str = "http://127.0.0.1:3000"  # Where clients reach the session registry
    session_ttl_hours: int = 24
    session_sweep_interval_minutes: int = 30
    auto_reset_delay_seconds: float = 3.0  # Delay before the form resets after a successful run
    stage_timeout_seconds: float | None = None  # Per-stage deadline; None waits indefinitely
    request_timeout_seconds: float = 30.0  # HTTP client timeout for collaborator calls
    state_dir: str = ".idclone"  # Directory of the client's durable handle store

    model_config = {
        "env_file": [".env"],
        "env_prefix": "IDCLONE_",
        "extra": "ignore",
    }
