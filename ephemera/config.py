"""
Server configuration.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Server settings."""

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    app_url: str = "http://localhost:3000"
    showing_tracebacks: bool = False

    # PostgreSQL Server settings
    psql_server_host: str = "localhost"
    psql_server_port: int = 5432
    psql_db: str = "ephemera_db"
    psql_user: str = "ephemera_app"
    psql_password: str = "-"
    psql_pool_min_size: int = 2
    psql_pool_max_size: int = 16

    # S3 Server settings
    s3_endpoint_url: str = "<endpoint>"
    s3_access_key: str = "<access-key>"
    s3_secret_key: str = "<secret-key>"
    s3_bucket_name: str = "<bkt>"
    s3_verify_ssl: bool = True
    media_timeout_seconds: float = 15.0
    media_url_expires_in: int = 24 * 60 * 60

    # Credentials
    jwt_secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 7 * 24 * 60

    # Expiry and retention
    conversation_ttl_hours: int = 24
    room_grace_period_minutes: int = 10
    permanent_room_retention_hours: int = 24
    room_message_cap: int = 200
    completed_room_retention_days: int = 30
    sweep_interval_seconds: int = 60

    # Logging
    logging_level: str = "DEBUG"
    logging_on_file: bool = True
    logs_dir: str = "logs"

    class Config:
        env_file = ".env"
        env_prefix = "EPHEMERA_"
        env_file_encoding = "utf-8"


# Global settings instance
settings = Settings()
