from typing import Annotated, Optional

from dotenv import find_dotenv
from pydantic import BaseModel, Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = [
    "Config",
    "ConfigLogging",
    "ConfigMetadata",
    "ConfigToken",
]

ENV_PREFIX = "GCE_AUTH"


class ConfigLogging(BaseModel):
    level: str = "INFO"
    format_json: bool = True
    to_file: Optional[str] = None


class ConfigMetadata(BaseModel):
    host: str = "metadata"
    path_prefix: str = "computeMetadata/v1"
    # Seconds; applies to the single GET issued per lookup.
    timeout: float = 10.0

    @computed_field  # type: ignore[misc]
    @property
    def base_url(self) -> str:
        return f"http://{self.host}/{self.path_prefix.strip('/')}/"


class ConfigToken(BaseModel):
    service_account: str = "default"
    refresh_margin_seconds: int = 2


class Config(BaseSettings):
    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix=f"{ENV_PREFIX}_",
        env_file=find_dotenv(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    logging: Annotated[ConfigLogging, Field(default_factory=ConfigLogging)]
    metadata: Annotated[ConfigMetadata, Field(default_factory=ConfigMetadata)]
    token: Annotated[ConfigToken, Field(default_factory=ConfigToken)]
