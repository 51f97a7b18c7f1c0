from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Checklist Sync"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Local store
    DATABASE_URL: str = "sqlite+aiosqlite:///./checklist_sync.db"

    # Remote API
    API_URL: str = "http://localhost:8000/api"
    API_TIMEOUT_SECONDS: float = 15.0
    FILE_UPLOAD_PATH: str = "/upload_arquivo"

    # Connectivity
    CONNECTIVITY_PROBE_URL: str = "https://clients3.google.com/generate_204"
    CONNECTIVITY_PROBE_TIMEOUT_SECONDS: float = 2.5
    CONNECTIVITY_POLL_SECONDS: float = 10.0
    RECONNECT_SETTLE_SECONDS: float = 1.0

    # Sync queue
    SYNC_MAX_RETRIES: int = 3
    COMPLETED_ITEM_GRACE_SECONDS: float = 5.0
    SYNC_STATUS_REFRESH_SECONDS: float = 5.0

    # Queue priorities (lower drains first)
    PRIORITY_SUBMIT_FORM: int = 1
    PRIORITY_CREATE_RESPONSE: int = 2
    PRIORITY_UPDATE_FIELD: int = 5
    PRIORITY_UPLOAD_FILE: int = 8
    PRIORITY_DEFAULT: int = 10

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }


settings = Settings()
