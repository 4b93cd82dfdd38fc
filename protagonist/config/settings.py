from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Primary text provider (OpenAI-compatible aggregator, rich prompt)
    text_primary_api_key: str = ""
    text_primary_base_url: str = "https://api.yyds168.net/v1"
    text_primary_model: str = "claude-sonnet-4-5"
    text_primary_temperature: float = 0.8
    text_primary_max_tokens: int = 1000

    # Secondary text provider (simplified prompt)
    text_secondary_api_key: str = ""
    text_secondary_base_url: str = "https://api.openai.com/v1"
    text_secondary_model: str = "gpt-4o-mini"
    text_secondary_temperature: float = 0.85
    text_secondary_max_tokens: int = 800

    # Replicate PhotoMaker (identity-preserving primary)
    replicate_api_key: str = ""
    replicate_api_url: str = "https://api.replicate.com/v1/predictions"
    photomaker_version: str = "ddfc2b08d209f9fa8c1eca692712918bd449f695dabb4a958da31802a9570fe4"
    photomaker_num_steps: int = 50
    photomaker_style_strength_ratio: int = 20
    photomaker_guidance_scale: float = 7.5
    photomaker_timeout_seconds: float = 300.0
    photomaker_poll_interval_seconds: float = 2.0

    # OpenAI images (identity-preserving secondary + cinematic fallback)
    image_api_key: str = ""
    image_api_base_url: str = "https://api.openai.com/v1"
    identity_image_model: str = "gpt-image-1"
    identity_image_size: str = "1024x1024"
    cinematic_image_model: str = "dall-e-3"
    cinematic_image_size: str = "1024x1024"

    # Retry on the identity-preserving primary
    image_retry_attempts: int = 2
    image_retry_delay_seconds: float = 1.0

    # Estimated cost per image (USD)
    cost_replicate: float = 0.025
    cost_openai: float = 0.04
    cost_dalle: float = 0.04
    placeholder_image_url: str = "https://via.placeholder.com/512x768/1a1a2e/ffffff?text=Day+{day}"
    daily_budget_usd: float = 50.0

    # Storage
    database_url: str = "sqlite:///./daily_protagonist.db"
    media_root: str = "./media"
    media_base_url: str = "http://127.0.0.1:8000/media"

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    # Scheduled delivery
    episode_schedule: str = "0 8 * * *"  # cron expression
    scheduler_enabled: bool = False

    # Service
    host: str = "127.0.0.1"
    port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


settings = Settings()
