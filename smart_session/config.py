"""Session store configuration pulled from environment variables via pydantic."""
import re

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from smart_session.utils.logging_utils import get_tagged_logger, mask_db_url

logger = get_tagged_logger(__name__, tag="config")

_TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


class Settings(BaseSettings):
    """Environment-driven configuration for the SQL session store."""
    model_config = SettingsConfigDict(env_prefix="SMART_SESSION_", extra="ignore")

    database_url: str = "sqlite:///./sessions.db"
    table_name: str = "sessions"
    locking_enabled: bool = False  # requires a lock_version column

    @field_validator("table_name", mode="after")
    @classmethod
    def check_table_name(cls, v: str) -> str:
        """Only plain (optionally schema-qualified) identifiers; the name is interpolated into SQL."""
        if not _TABLE_NAME_RE.match(v):
            raise ValueError(f"Invalid session table name '{v}'")
        return v


settings = Settings()


if __name__ == "__main__":
    logger.setLevel("DEBUG")
    logger.debug(f"Loaded settings: {settings.model_copy(update={'database_url': mask_db_url(settings.database_url)}).model_dump_json(indent=4)}")
