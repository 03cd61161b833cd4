from pydantic import BaseModel

from linkdesk.config import config


def _flag(key: str, default: str = "false") -> bool:
    return str(config.get(key, default)).strip().lower() == "true"


class AppEnvironConfig(BaseModel):
    DEBUG: bool = _flag("DEBUG")

    # Listener; a single worker owns the in-process session registry
    API_HOST: str = config.get("API_HOST", "0.0.0.0").strip()  # type: ignore
    PORT: int = int((config.get("PORT") or "").strip() or 8080)

    # Twilio Network Traversal Service; leaving either value empty forces STUN-only ICE
    TWILIO_ACCOUNT_SID: str | None = (config.get("TWILIO_ACCOUNT_SID") or "").strip() or None
    TWILIO_AUTH_TOKEN: str | None = (config.get("TWILIO_AUTH_TOKEN") or "").strip() or None
    TWILIO_API_BASE_URL: str = config.get(
        "TWILIO_API_BASE_URL", "https://api.twilio.com/2010-04-01"
    ).strip()  # type: ignore
    TWILIO_TOKEN_TTL: int = int((config.get("TWILIO_TOKEN_TTL") or "").strip() or 86400)
    ICE_FETCH_TIMEOUT: float = float((config.get("ICE_FETCH_TIMEOUT") or "").strip() or 10)
    FALLBACK_STUN_URL: str = config.get(
        "FALLBACK_STUN_URL", "stun:stun.l.google.com:19302"
    ).strip()  # type: ignore

    # Session codes
    SESSION_CODE_MAX_ATTEMPTS: int = int(
        (config.get("SESSION_CODE_MAX_ATTEMPTS") or "").strip() or 16
    )

    LOGFIRE_ENABLE: bool = _flag("LOGFIRE_ENABLE")
    LOGFIRE_TOKEN: str | None = (config.get("LOGFIRE_TOKEN") or "").strip() or None

    @property
    def twilio_configured(self) -> bool:
        return bool(self.TWILIO_ACCOUNT_SID and self.TWILIO_AUTH_TOKEN)


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
