from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    env: str = "dev"
    secret_key: str = "change_me_super_secret"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    database_url: str = "postgresql+psycopg2://ledger:ledgerpass@db:5432/cashledger"
    backend_cors_origins: str = "http://localhost:5173"

    # Localized error messages ("en" or "ar")
    language: str = "en"
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Well-known money boxes resolved by name
    daily_money_box_name: str = "Daily Box"
    main_money_box_name: str = "Main Treasury"
    seed_default_money_boxes: bool = True

    # Ledger policy
    money_box_allow_negative: bool = False
    ledger_max_retries: int = 3

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        origins = self.backend_cors_origins
        return [origin.strip() for origin in origins.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
