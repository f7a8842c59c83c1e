from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    APP_NAME: str = "NeoLink Ward Service"
    VERSION: str = "1.0.0"
    SECRET_KEY: str = "change-me-in-production-use-strong-random-key"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    DATABASE_URL: str = "sqlite:///./neolink.db"
    LOG_LEVEL: str = "INFO"

    # Demo institution used by the seeder
    DEFAULT_INSTITUTION_ID: str = "demo-institution-1"
    DEFAULT_INSTITUTION_NAME: str = "Demo District Hospital"
    SEED_DEMO_DATA: bool = True

    # Generative AI provider (generateContent-style REST endpoint)
    AI_API_URL: Optional[str] = "https://generativelanguage.googleapis.com/v1beta"
    AI_API_KEY: Optional[str] = None
    AI_MODEL: str = "gemini-2.5-flash"
    AI_TIMEOUT: int = 30
    AI_TEMPERATURE: float = 0.4
    AI_MAX_OUTPUT_TOKENS: int = 2048
    AI_MOCK_MODE: bool = True  # Canned responses when no provider is configured

    # Spacing between sequential AI requests in ward-wide batches
    AI_RISK_BATCH_DELAY_SECONDS: float = 0.5
    AI_HANDOFF_BATCH_DELAY_SECONDS: float = 0.8

    # HIPAA-style access audit
    AUDIT_LOG_ENABLED: bool = True

    class Config:
        env_file = ".env"


settings = Settings()
