from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "eci"
    POSTGRES_USER: str = "eci"
    POSTGRES_PASSWORD: str = "eci"
    # Full SQLAlchemy URL; takes precedence over the POSTGRES_* fields
    DATABASE_URL: Optional[str] = None

    JWT_SECRET: str = "change-me"
    JWT_ALG: str = "HS256"

    TAX_RATE: float = 0.08
    # "creation" reserves stock when the order is placed, "payment" when it is paid
    INVENTORY_RESERVATION: str = "creation"
    # When set, product data is resolved against the products service
    PRODUCTS_SERVICE_URL: Optional[str] = None

    SERVICE_NAME: str = "orders-service"
    SERVICE_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    class Config:
        env_file = ".env"

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def reserve_on_payment(self) -> bool:
        return self.INVENTORY_RESERVATION.lower() == "payment"

@lru_cache
def get_settings() -> Settings:
    return Settings()
