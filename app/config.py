from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./meal_entries.db"
    anthropic_api_key: str = ""

    text_model: str = "claude-sonnet-4-5-20250929"
    vision_model: str = "claude-sonnet-4-5-20250929"  # must be multimodal

    # Generation settings for nutrition analysis
    analysis_temperature: float = 0.3
    analysis_max_tokens: int = 1024

    # Anthropic API timeout settings (seconds)
    anthropic_timeout: int = 60
    anthropic_connect_timeout: int = 10

    # Caller-level policy around one analysis call
    analysis_timeout: float = 90.0
    analysis_max_attempts: int = 2
    analysis_retry_base_delay: float = 1.0

    # Uploads
    max_image_bytes: int = 10 * 1024 * 1024  # 10MB

    # Include raw upstream error text in API responses (development only)
    expose_error_details: bool = False

    class Config:
        env_file = ".env"


settings = Settings()
