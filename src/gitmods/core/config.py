"""Project configuration read from the `.gitmodsrc` file."""
import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from gitmods.core.errors import ConfigError

logger = logging.getLogger(__name__)

RC_FILENAME = ".gitmodsrc"
DEFAULT_MODULES_DIR = "gitmods_modules"
DEFAULT_MANIFEST_FILENAME = "gitmods.json"


class RcConfig(BaseModel):
    """Settings a project can override in its `.gitmodsrc`."""

    directory: str = Field(
        default=DEFAULT_MODULES_DIR,
        description="Modules root, relative to the project directory",
    )
    filename: str = Field(
        default=DEFAULT_MANIFEST_FILENAME,
        description="Manifest file name inside every module",
    )
    link: bool = Field(default=False, description="Share clones through the link cache")
    linkdir: Optional[str] = Field(default=None, description="Link cache directory")
    depth: Optional[int] = Field(default=None, ge=1, description="Shallow clone depth")

    model_config = ConfigDict(extra="ignore")

    @field_validator("filename")
    @classmethod
    def validate_filename(cls, v: str) -> str:
        """Ensure the manifest name is a bare file name."""
        if not v or "/" in v or "\\" in v:
            raise ValueError(f"filename must be a plain file name, got: {v}")
        return v


def load_rc(cwd: Path) -> RcConfig:
    """Load `.gitmodsrc` from the project directory.

    A missing file gives the defaults.

    Raises:
        ConfigError: If the file is not valid JSON or holds invalid values.
    """
    rc_path = Path(cwd) / RC_FILENAME
    if not rc_path.exists():
        return RcConfig()
    try:
        data = json.loads(rc_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Invalid config file {rc_path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config file {rc_path}: expected a JSON object")
    try:
        config = RcConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config file {rc_path}: {e}")
    logger.debug(f"Loaded {rc_path}")
    return config
