"""Configuration endpoints for exposing runtime options to the frontend."""

from __future__ import annotations

from fastapi import APIRouter

from app.config import get_settings

router = APIRouter(prefix="/config", tags=["config"])


@router.get("/chat")
def read_chat_config() -> dict[str, object]:
    """Expose the chat UI options and realtime connection parameters."""

    settings = get_settings()
    return {
        "colors": list(settings.messenger_colors),
        "fallbackColor": settings.fallback_color,
        "attachments": {
            "allowedImages": list(settings.allowed_images),
            "allowedFiles": list(settings.allowed_files),
            "maxUploadSize": settings.max_upload_size,
        },
        "history": {
            "defaultLimit": settings.chat_history_default_limit,
            "maxLimit": settings.chat_history_max_limit,
        },
        "realtime": {
            "key": settings.broker_key,
            "appId": settings.broker_app_id,
            "websocketPath": "/ws/notifications",
            "authEndpoint": "/api/chat/auth",
            "channelPrefix": settings.private_channel_prefix,
        },
    }
