from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # App settings
    PROJECT_NAME: str = "RocketBucks"
    API_PREFIX: str = "/api"
    DEBUG: bool = Field(default=False)

    # DynamoDB
    DYNAMO_REGION: str = Field(default="us-east-1")
    DYNAMO_PLAID_ITEMS_TABLE: str = Field(default="rocket-bucks-plaid-items")
    DYNAMO_ACCOUNTS_TABLE: str = Field(default="rocket-bucks-accounts")
    DYNAMO_TRANSACTIONS_TABLE: str = Field(default="rocket-bucks-transactions")
    DYNAMO_RECURRING_TABLE: str = Field(default="rocket-bucks-recurring")

    # Plaid
    PLAID_CLIENT_ID: str = Field(default="")
    PLAID_SECRET: str = Field(default="")
    PLAID_ENV: str = Field(default="production")
    PLAID_CLIENT_NAME: str = "Rocket Bucks"
    TRANSACTION_SYNC_DAYS: int = 30

    # JWT Authentication (tokens issued by the hosted auth provider)
    JWT_SECRET_KEY: str = Field(default="", validation_alias="JWT_SECRET")
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = Field(default="authenticated")

    # Encryption for Plaid access tokens at rest
    ENCRYPTION_KEY: str = Field(default="")

    # AI advisor (OpenRouter, OpenAI-compatible)
    OPENROUTER_API_KEY: str = Field(default="")
    OPENROUTER_MODEL: str = Field(default="anthropic/claude-3.5-sonnet")
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    OPENROUTER_APP_URL: str = Field(default="http://localhost:5173")

    # Background sync
    SYNC_SCHEDULER_ENABLED: bool = Field(default=False)
    SYNC_HOUR: int = 6
    SYNC_MINUTE: int = 0

    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]


settings = Settings()
