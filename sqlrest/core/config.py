from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./sqlrest.db"
    DATABASE_ECHO: bool = False

    # Description document loaded at startup and on /load
    DEFINITION_FILE: str = "api.yaml"
    API_PREFIX: str = "/rest"

    DEFAULT_PAGE_SIZE: int = 100
    DEFAULT_ID_COLUMN: str = "ID"

    # Tables matching any of these globs are left out of the generated description
    GENERATOR_EXCLUDE: List[str] = ["_*", "sta_*", "tbl*"]
    API_TITLE: str = "SQL REST API"
    API_VERSION: str = "1.0.0"

    # SQL Server only, empty to disable
    CLEAR_ERROR_FUNCTION: str = "dbo.fnGetClearErrorMessage"

    # This tells Pydantic to read from the .env file
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Create a single instance of the settings to use everywhere
settings = Settings()
