from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    APP_NAME: str = "VPN CA"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # PKI storage
    CA_DIR: str = "pki/ca"
    DATA_DIR: str = "pki/data"

    # CA root (only used when the CA is first created)
    CA_KEY_ALGORITHM: str = "RSA"  # "RSA" or "ECDSA"
    CA_KEY_SIZE: int = 3072
    CA_VALIDITY_DAYS: int = 1800
    CA_COMMON_NAME: str = "VPN CA"

    # Issued certificates
    SERVER_CERT_VALIDITY_DAYS: int = 360


settings = Settings()
