from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.database import build_database_url


class Settings(BaseSettings):
    """Application settings, read from the environment (e.g. POSTGRES_HOST, KAFKA_ENABLED)."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    service_name: str = "inventory-service"
    log_level: str = "INFO"
    log_timezone: str = "Asia/Karachi"

    # A full DATABASE_URL wins over the individual Postgres parts
    database_url: Optional[str] = None
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    postgres_host: str = "localhost"
    postgres_port: str = "5432"
    postgres_db: str = "storefront"

    kafka_enabled: bool = False
    kafka_bootstrap_servers: str = "localhost:9092"
    kafka_consumer_group: str = "inventory-service-group"

    inventory_service_port: int = 8004
    seed_products: bool = False

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return build_database_url(
            self.postgres_user,
            self.postgres_password,
            self.postgres_host,
            self.postgres_port,
            self.postgres_db,
        )
