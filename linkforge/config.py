from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    PORT: int = 3002
    DB_PATH: str = "/data/linkforge.db"
    LOG_LEVEL: str = "info"

    # LLM
    ANTHROPIC_API_KEY: str = ""
    LLM_MODEL: str = "claude-sonnet-4-5"
    LLM_TIMEOUT: float = 45.0

    # Extraction providers
    READER_BASE_URL: str = "https://r.jina.ai/"
    TIKWM_API_URL: str = "https://www.tikwm.com/api/"
    TWEET_MIRROR_HOST: str = "nitter.net"
    EXTRACTION_TIMEOUT: float = 20.0

    # Speech (transcription + TTS)
    DEEPGRAM_API_KEY: str = ""
    TRANSCRIPTION_MODEL: str = "nova-2"
    TTS_MODEL: str = "aura-2-athena-en"
    TTS_ENCODING: str = "mp3"
    TTS_SAMPLE_RATE: int | None = None
    TTS_MAX_CHARS: int = 1900
    AUDIO_ENABLED: bool = False
    AUDIO_TIMEOUT_SECONDS: float = 20.0

    # Images
    TOGETHER_API_KEY: str = ""
    IMAGE_MODEL: str = "black-forest-labs/FLUX.1.1-pro"

    # Media storage
    MEDIA_BACKEND: str = "local"
    MEDIA_ROOT: str = "/data/media"
    MEDIA_BASE_URL: str = "http://localhost:3002/media"
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_ROLE_KEY: str = ""

    # Pipeline
    ADMIN_SECRET: str = ""
    PIPELINE_BUDGET_MS: int = 55_000
    MAX_STEP_RETRIES: int = 2
    DEFAULT_MAX_RETRIES: int = 3
    MERGE_TOPIC_THRESHOLD: int = 2
    RETRY_BATCH_SIZE: int = 10


settings = Settings()
