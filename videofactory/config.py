# videofactory/config.py
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent

ALL_PLATFORMS = "tiktok,instagram,youtube,twitter,facebook"


class Settings(BaseSettings):
    # DB
    DATABASE_URL: str = "sqlite:///./videofactory.db"
    LOG_LEVEL: str = "INFO"

    # CORS
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Generation backend (kie.ai)
    KIE_API_KEY: str | None = None
    KIE_ENDPOINT: str = "https://api.kie.ai"
    KIE_IMAGE_MODEL: str = "sora-2-pro-image-to-video"
    KIE_TEXT_MODEL: str = "sora-2-pro-text-to-video"
    KIE_TIMEOUT: int = 60
    KIE_ASPECT_RATIO: str = "portrait"
    KIE_N_FRAMES: str = "15"
    KIE_SIZE: str = "standard"

    # 120 x 5s = 10 minutes of polling
    POLL_INTERVAL: float = 5.0
    POLL_MAX_ATTEMPTS: int = 120

    # Reference image upscaling (Replicate Real-ESRGAN); skipped without a token
    REPLICATE_API_TOKEN: str | None = None
    REPLICATE_ENDPOINT: str = "https://api.replicate.com/v1"
    UPSCALE_MODEL_VERSION: str = "f121d640bd286e1fdc67f9799164c1d5be36ff74576ee11c803ae5b665dd46aa"
    UPSCALE_SCALE: int = 4
    UPSCALE_FACE_ENHANCE: bool = True
    UPSCALE_POLL_INTERVAL: float = 1.0
    UPSCALE_MAX_POLLS: int = 120

    # Storage backend: "local" (default) or "s3" (for AWS S3 / R2 / S3-compatible)
    STORAGE_BACKEND: str = "local"
    STATIC_URL_PREFIX: str = "/static"
    MEDIA_TIMEOUT: int = 120
    REHOST_MEDIA: bool = False

    # S3 configuration (used when STORAGE_BACKEND == "s3")
    S3_BUCKET: str | None = None
    S3_REGION: str | None = None
    S3_ENDPOINT: str | None = None  # optional (useful for R2 or custom endpoints)
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    # Public base URL for serving objects (recommended for non-AWS like R2)
    S3_PUBLIC_BASE_URL: str | None = None

    # Post-processing
    FFMPEG_BIN: str = "ffmpeg"
    WATERMARK_TEXT: str = "PROGRAMMING CAR | 786-478-2531"
    WATERMARK_FONT: str | None = None
    OPENAI_API_KEY: str | None = None
    OPENAI_ENDPOINT: str = "https://api.openai.com/v1"
    TTS_MODEL: str = "tts-1-hd"
    TTS_VOICE: str = "onyx"

    # Publishing (Blotato)
    BLOTATO_API_KEY: str | None = None
    BLOTATO_ENDPOINT: str = "https://backend.blotato.com/v2/posts"
    BLOTATO_TIKTOK_ID: str | None = None
    BLOTATO_INSTAGRAM_ID: str | None = None
    BLOTATO_YOUTUBE_ID: str | None = None
    BLOTATO_TWITTER_ID: str | None = None
    BLOTATO_FACEBOOK_ID: str | None = None
    BLOTATO_FACEBOOK_PAGE_ID: str | None = None
    PUBLISH_TIMEOUT: float = 60.0
    PUBLISH_PLATFORMS: str = ALL_PLATFORMS

    # Owner notification (WhatsApp via whapi)
    WHAPI_TOKEN: str | None = None
    WHAPI_ENDPOINT: str = "https://gate.whapi.cloud/messages/text"
    OWNER_PHONE: str | None = None

    # "Awaiting input" sessions
    PENDING_REQUEST_TTL: float = 600.0
    PENDING_SWEEP_INTERVAL: float = 30.0

    # Brand strings injected into prompts and captions
    BRAND_NAME: str = "Programming Car"
    BRAND_PHONE: str = "786-478-2531"
    BRAND_LOCATION: str = "Miami, Florida"
    BRAND_WHATSAPP: str = "wa.me/17864782531"

    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        extra="ignore",
        case_sensitive=False,
    )

    @property
    def poll_budget_seconds(self) -> float:
        return self.POLL_INTERVAL * self.POLL_MAX_ATTEMPTS

    @property
    def publish_platforms(self) -> list[str]:
        return [p.strip().lower() for p in self.PUBLISH_PLATFORMS.split(",") if p.strip()]


settings = Settings()
