# config.py
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    solana_cluster_url: str = "https://api.mainnet-beta.solana.com"
    helius_api_key: Optional[str] = None
    coingecko_url: str = "https://api.coingecko.com/api/v3/simple/price?ids=SOLANA&vs_currencies=USD"
    rpc_timeout: int = 30
    retry_attempts: int = 3
    pool_size: int = 10
    request_delay: float = 0.0  # seconds between transaction fetches
    signature_page_limit: int = 1000
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def rpc_url(self) -> str:
        if self.helius_api_key:
            return f"https://mainnet.helius-rpc.com/?api-key={self.helius_api_key}"
        return self.solana_cluster_url

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False
    )

settings = Settings()
