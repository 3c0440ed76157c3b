import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _split_list(value: Any) -> list[str] | Any:
    """Accept JSON arrays, comma separated strings or sequences."""

    if value in (None, "", Ellipsis):
        return []
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(parsed, (list, tuple, set)):
            return [str(item) for item in parsed]
        return [str(parsed)]
    if isinstance(value, (list, tuple, set)):
        return [str(item) for item in value]
    return value


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="Parley API", env="APP_NAME", description="Human readable service name")
    environment: str = Field(default="development", env="ENVIRONMENT", description="Deployment environment name")
    debug: bool = Field(default=True, env="DEBUG", description="Enable debug mode")

    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:3000",
            "http://localhost:8080",
            "http://127.0.0.1",
            "http://127.0.0.1:8080",
        ],
        env="CORS_ORIGINS",
        description="List of allowed CORS origins",
    )

    database_user: str = Field(default="parley", env="DB_USER")
    database_password: str = Field(default="parley", env="DB_PASSWORD")
    database_host: str = Field(default="db", env="DB_HOST")
    database_port: int = Field(default=3306, env="DB_PORT")
    database_name: str = Field(default="parley", env="DB_NAME")
    database_url_override: str | None = Field(
        default=None,
        validation_alias="DATABASE_URL",
        description="Full SQLAlchemy URL; takes precedence over the DB_* parts",
    )

    jwt_secret_key: str = Field(default="changeme", env="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", env="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=30, env="ACCESS_TOKEN_EXPIRE_MINUTES")

    chat_history_default_limit: int = Field(default=30, env="CHAT_HISTORY_DEFAULT_LIMIT")
    chat_history_max_limit: int = Field(default=100, env="CHAT_HISTORY_MAX_LIMIT")
    chat_message_max_length: int = Field(default=5000, env="CHAT_MESSAGE_MAX_LENGTH")

    media_root: Path = Field(default=Path("uploads"), env="MEDIA_ROOT")
    media_base_url: str = Field(
        default="/storage",
        env="MEDIA_BASE_URL",
        description="Public base URL the blob store serves files from",
    )
    attachments_folder: str = Field(default="attachments", env="ATTACHMENTS_FOLDER")
    avatar_folder: str = Field(default="users-avatar", env="AVATAR_FOLDER")
    default_avatar: str = Field(default="avatar.png", env="DEFAULT_AVATAR")
    max_upload_size_mb: int = Field(
        default=150, env="MAX_UPLOAD_SIZE_MB", description="Maximum attachment size in megabytes"
    )
    allowed_images: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["png", "jpg", "jpeg", "gif"],
        env="ALLOWED_IMAGES",
        description="Attachment extensions classified as images",
    )
    allowed_files: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["zip", "rar", "txt"],
        env="ALLOWED_FILES",
        description="Additional attachment extensions accepted as plain files",
    )

    gravatar_enabled: bool = Field(default=True, env="GRAVATAR_ENABLED")
    gravatar_image_size: int = Field(default=200, env="GRAVATAR_IMAGE_SIZE")
    gravatar_imageset: str = Field(default="identicon", env="GRAVATAR_IMAGESET")

    messenger_colors: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: [
            "#2180f3",
            "#2196F3",
            "#00BCD4",
            "#3F51B5",
            "#673AB7",
            "#4CAF50",
            "#FFC107",
            "#FF9800",
            "#ff2522",
            "#9C27B0",
        ],
        env="MESSENGER_COLORS",
    )

    realtime_redis_url: str | None = Field(
        default=None,
        env="REALTIME_REDIS_URL",
        description="Redis URL used as the pub/sub broker; local-only delivery when unset",
    )
    realtime_namespace: str = Field(default="parley.realtime", env="REALTIME_NAMESPACE")
    realtime_node_id: str | None = Field(default=None, env="REALTIME_NODE_ID")
    realtime_publish_timeout_seconds: float = Field(
        default=2.0,
        env="REALTIME_PUBLISH_TIMEOUT_SECONDS",
        description="Upper bound for a single broker publish call",
    )
    private_channel_prefix: str = Field(default="private-chat", env="PRIVATE_CHANNEL_PREFIX")
    broker_app_id: str = Field(default="parley", env="BROKER_APP_ID")
    broker_key: str = Field(default="parley-key", env="BROKER_KEY")
    broker_secret: str = Field(default="changeme", env="BROKER_SECRET")
    websocket_receive_timeout_seconds: int = Field(
        default=60, env="WEBSOCKET_RECEIVE_TIMEOUT_SECONDS"
    )

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"mysql+pymysql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def max_upload_size(self) -> int:
        """Maximum attachment size in bytes."""

        return self.max_upload_size_mb * 1048576

    @property
    def fallback_color(self) -> str:
        return self.messenger_colors[0] if self.messenger_colors else "#000000"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):  # type: ignore[override]
        if v in (None, "", Ellipsis):
            return v
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, (list, tuple, set)):
            return list(v)
        return v

    @field_validator("allowed_images", "allowed_files", "messenger_colors", mode="before")
    @classmethod
    def parse_list_field(cls, value: Any) -> list[str] | Any:
        return _split_list(value)

    @field_validator("media_root", mode="before")
    @classmethod
    def resolve_media_root(cls, value: str | Path) -> Path:
        if isinstance(value, Path):
            return value.resolve()
        return Path(value).resolve()


@lru_cache
def get_settings() -> Settings:
    return Settings()
