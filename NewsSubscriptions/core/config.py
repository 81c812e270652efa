from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    APP_NAME: str = "News Subscriptions"
    VERSION: str = "0.1.0"
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    # Document store: "sql" or "mongo"
    DOCUMENT_STORE: str = "sql"

    # SQL document store
    POSTGRES_USER: str = "user"
    POSTGRES_PASSWORD: str = "password"
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "news"
    DATABASE_URL: Optional[str] = None

    @property
    def DB_URL(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Mongo document store
    MONGO_URI: str = "mongodb://mongo:27017"
    MONGO_DB_NAME: str = "News"

    # Redis (ranked store)
    REDIS_HOST: str = "redis"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""

    @property
    def REDIS_URL(self) -> str:
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # Feed projection: "scored" or "ordered"
    FEED_STRATEGY: str = "scored"

    class Config:
        env_file = ".env"
        secrets_dir = "/run/secrets"

@lru_cache()
def get_settings():
    return Settings()
