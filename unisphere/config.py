from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PLACEHOLDER_SECRETS = {"", "change-me", "secret", "dev-secret"}


class Settings(BaseSettings):
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8080
    SHUTDOWN_TIMEOUT_SECONDS: int = 10

    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "postgres"
    DB_PASS: str = ""
    DB_NAME: str = "unisphere"
    DATABASE_URL: str | None = None
    DB_POOL_SIZE: int = 20
    DB_TIMEOUT_SECONDS: float = 5.0
    AUTO_CREATE_TABLES: bool = False

    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    TOKEN_ISSUER: str = "unisphere.app"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    REVOKED_TOKEN_RETENTION_DAYS: int = 30
    TOKEN_PURGE_INTERVAL_MINUTES: int = 60

    STORAGE_BACKEND: str = "local"
    STORAGE_PATH: str = "./uploads"
    PUBLIC_BASE_URL: str = "http://localhost:8080/uploads"

    S3_BUCKET: str | None = None
    S3_REGION: str | None = None
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None

    CHAT_FILE_MAX_BYTES: int = 16 * 1024 * 1024
    PROFILE_PHOTO_MAX_BYTES: int = 5 * 1024 * 1024

    WS_SEND_BUFFER: int = 256
    WS_READ_LIMIT_BYTES: int = 512 * 1024
    WS_PONG_WAIT_SECONDS: float = 60.0
    WS_WRITE_WAIT_SECONDS: float = 10.0
    HUB_LISTENER_BUFFER: int = 256

    CELERY_BROKER_URL: str = "redis://localhost:6379/0"

    @property
    def database_url(self):
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASS}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    @property
    def ws_ping_period(self) -> float:
        # must stay below the pong wait so a healthy peer never hits the read deadline
        return self.WS_PONG_WAIT_SECONDS * 9 / 10

    @field_validator("ALGORITHM")
    @classmethod
    def validate_algorithm(cls, value: str) -> str:
        if value not in {"HS256", "HS384", "HS512"}:
            raise ValueError("ALGORITHM must be one of HS256, HS384, HS512")
        return value

    @field_validator("APP_ENV")
    @classmethod
    def validate_env(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in {"development", "production"}:
            raise ValueError("APP_ENV must be 'development' or 'production'")
        return value

    @field_validator("STORAGE_BACKEND")
    @classmethod
    def validate_backend(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in {"local", "s3"}:
            raise ValueError("STORAGE_BACKEND must be 'local' or 's3'")
        return value

    @model_validator(mode="after")
    def validate_runtime(self):
        if self.APP_ENV == "production" and self.SECRET_KEY in PLACEHOLDER_SECRETS:
            raise ValueError("SECRET_KEY must be set in production")
        if self.STORAGE_BACKEND == "s3" and not self.S3_BUCKET:
            raise ValueError("S3_BUCKET is required when STORAGE_BACKEND=s3")
        return self

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
