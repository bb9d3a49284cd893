"""
Login audit - Settings

Settings are loaded from environment variables with the LOGINAUDIT_ prefix,
or from a .env file in the working directory.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LOGINAUDIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # SQL Server connection.  An empty username lets the driver fall back to
    # its default (integrated) credentials.
    SQL_DRIVER: str = "mssql+pymssql"
    SQL_USERNAME: str = ""
    SQL_PASSWORD: str = ""
    SQL_DATABASE: str = "master"
    SQL_LOGIN_TIMEOUT: int = 15

    # Directory service.  An empty LDAP_SERVER means the NetBIOS domain name
    # is used as the host name of the domain controller.
    LDAP_SERVER: str = ""
    LDAP_PORT: int = 389
    LDAP_USE_SSL: bool = False
    LDAP_BIND_DN: str = ""
    LDAP_BIND_PASSWORD: str = ""
    LDAP_RECEIVE_TIMEOUT: int = 30

    # NetBIOS domain -> LDAP host / search base overrides
    LDAP_DOMAINS: dict[str, str] = {}
    LDAP_SEARCH_BASES: dict[str, str] = {}

    # Domains whose principals are skipped unless a request says otherwise
    EXCLUDED_DOMAINS: list[str] = []

    # Logging level
    LOG_LEVEL: str = "INFO"


settings = Settings()
