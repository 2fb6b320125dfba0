from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    BATCH_SIZE: int = 100
    BATCH_DELAY_SECONDS: float = 0.0
    MAX_ITERATIONS: int = 100_000
    RETURN_BUFFER_SIZE: int = 10_000
    VAR_QUANTILE: float = 0.05
    ENHANCED_SHARE_FACTOR: float = 1.5
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
