import getpass
import os
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from tierflow.recovery import FatalError


def _default_actor() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "anonymous"


class Settings(BaseModel):
    """Runtime configuration, read from TIERFLOW_* environment variables."""

    data_dir: Path = Field(default=Path(".tierflow"), description="Directory holding the store file")
    store_format: str = Field(default="yaml", description="'yaml' or 'json'")
    actor: str = Field(default_factory=_default_actor, description="Identity the CLI acts as")

    @field_validator('store_format')
    @classmethod
    def validate_store_format(cls, v):
        v = v.strip().lower()
        if v not in ("yaml", "json"):
            raise ValueError(f"Unsupported store format: {v}")
        return v

    @property
    def store_path(self) -> Path:
        suffix = "json" if self.store_format == "json" else "yml"
        return self.data_dir / f"store.{suffix}"


def load_settings() -> Settings:
    """Build Settings from the environment; unset variables keep their defaults."""
    overrides = {}
    if os.getenv('TIERFLOW_DATA_DIR'):
        overrides['data_dir'] = Path(os.environ['TIERFLOW_DATA_DIR']).expanduser()
    if os.getenv('TIERFLOW_STORE_FORMAT'):
        overrides['store_format'] = os.environ['TIERFLOW_STORE_FORMAT']
    if os.getenv('TIERFLOW_ACTOR'):
        overrides['actor'] = os.environ['TIERFLOW_ACTOR']
    try:
        return Settings(**overrides)
    except ValueError as e:
        raise FatalError(f"Invalid configuration: {e}") from e
