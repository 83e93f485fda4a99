"""Module providing settings for the application"""
from typing import Optional, List, Literal
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Class representing settings for the application"""
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    # Google Sheets store
    SPREADSHEET_ID: str = ""
    SHEET_RANGE: str = "Sheet1!A:C"
    SHEETS_API_URL: str = "https://sheets.googleapis.com/v4"
    GOOGLE_CREDENTIALS_FILE: Optional[str] = None
    GOOGLE_CLIENT_EMAIL: Optional[str] = None
    GOOGLE_PRIVATE_KEY: Optional[str] = None
    GOOGLE_TOKEN_URI: str = "https://oauth2.googleapis.com/token"

    # Upstream price endpoints
    MARKETPLACE_URL: str = "https://storage.googleapis.com/kspr-api-v1/marketplace/marketplace.json"
    ASSET_SYMBOL: str = "KASPER"
    REFERENCE_PRICE_URL: str = "https://api.kaspa.org/info/price?stringOnly=false"
    REFERENCE_PRICE_FIELD: str = "price"
    REFERENCE_RATE_LIMIT_PER_MINUTE: int = 30
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # Market cap heuristic
    SUPPLY_CONSTANT: float = 28_700_000_000
    MARKET_CAP_DECIMALS: int = 5

    # Background jobs
    SAMPLER_ENABLED: bool = True
    SAMPLE_INTERVAL_SECONDS: int = 900  # 15 minutes
    BACKFILL_INTERVAL_SECONDS: int = 3600  # <= 0 disables the loop
    BACKFILL_INITIAL_DELAY_SECONDS: int = 60
    RECOMPUTE_POLICY: Literal["sparse", "full"] = "sparse"

    # Comma-separated list of origins allowed to read the API
    ALLOWED_ORIGINS: str = "https://www.kaspercoin.net"

    LOG_LEVEL: str = "INFO"
    LOG_FILE_PATH: str = "app.log"

    @property
    def allowed_origins(self) -> List[str]:
        """Split ALLOWED_ORIGINS into a list, dropping blanks."""
        return [item.strip() for item in self.ALLOWED_ORIGINS.split(",") if item.strip()]


settings = Settings()
