from pydantic_settings import BaseSettings
from typing import Optional, List

class Settings(BaseSettings):
    PROJECT_NAME: str = "Exam Attempt Service"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 12

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Database Configuration
    DATABASE_HOST: str = "localhost"
    DATABASE_PORT: str = "5432"
    DATABASE_USER: str = "postgres"
    DATABASE_PASSWORD: str = ""
    DATABASE_NAME: str = "exam_attempts"

    DATABASE_URL: str = ""
    TEST_DATABASE_URL: Optional[str] = None

    def __init__(self, **data):
        super().__init__(**data)
        if not self.DATABASE_URL:
            self.DATABASE_URL = (
                f'postgresql://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}'
                f'@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}'
            )

    # Attempt timing
    EXPIRY_SWEEP_INTERVAL_SECONDS: int = 30
    ATTEMPT_INACTIVITY_TIMEOUT_SECONDS: int = 0  # 0 disables inactivity expiry
    DISCONNECT_GRACE_SECONDS: int = 300
    MAX_EXTRA_MINUTES: int = 480
    ALLOW_CONCURRENT_ATTEMPTS: bool = False
    STALE_RETRY_ATTEMPTS: int = 3

    # Grading
    PENDING_GRADING_INTERVAL_SECONDS: int = 300

    # AI grading assist
    AI_GRADING_PROVIDER: str = "mock"
    AI_GRADING_MODEL: str = "gpt-4o-mini"
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"

    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"
    SQL_ECHO: bool = False

    class Config:
        env_file = ".env"
        extra = "ignore"

settings = Settings()
