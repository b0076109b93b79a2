from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    PRESET: str = "twitter"
    TIMESTAMP_BITS: Optional[int] = None
    NODE_PRIMARY_BITS: Optional[int] = None
    NODE_SECONDARY_BITS: Optional[int] = None
    SEQUENCE_BITS: Optional[int] = None
    EPOCH: Optional[int] = None
    TICK_MS: Optional[int] = None
    NODE_PRIMARY: int = 0
    NODE_SECONDARY: int = 0
    MAX_BATCH_COUNT: int = 1000
    MAX_ENCODERS: int = 1024
    STATE_BACKEND: str = "memory"
    STATE_KEY_PREFIX: str = "flakeid:state"
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_USERNAME: Optional[str] = None
    REDIS_PASSWORD: Optional[str] = None
    REDIS_SSL: bool = False

    class Config:
        env_file = ".env"


settings = Settings()
