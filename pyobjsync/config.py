"""Configuration for pyobjsync.

Values are read from environment variables first and from
``~/.config/pyobjsync/config`` (``KEY=VALUE`` lines) second.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .exceptions import ConfigurationError
from .utils import DEFAULT_MAX_CONCURRENT_TRANSFERS, DEFAULT_PART_SIZE

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:9000/api/v1"

ENV_API_KEY = "PYOBJSYNC_API_KEY"
ENV_API_URL = "PYOBJSYNC_API_URL"
ENV_PART_SIZE = "PYOBJSYNC_PART_SIZE"
ENV_MAX_CONCURRENT = "PYOBJSYNC_MAX_CONCURRENT_TRANSFERS"
ENV_S3_ENDPOINT_URL = "PYOBJSYNC_S3_ENDPOINT_URL"
ENV_S3_REGION = "PYOBJSYNC_S3_REGION"


class Config:
    """Configuration manager for pyobjsync."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding the config file. Defaults to
                ~/.config/pyobjsync
        """
        if config_dir is None:
            config_dir = Path.home() / ".config" / "pyobjsync"
        self.config_dir = config_dir
        self.config_file = config_dir / "config"

    def _load_file(self) -> dict[str, str]:
        """Read KEY=VALUE pairs from the config file."""
        values: dict[str, str] = {}
        if not self.config_file.exists():
            return values

        try:
            with open(self.config_file, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, value = line.split("=", 1)
                    values[key.strip().lower()] = value.strip().strip('"')
        except OSError as e:
            logger.warning(f"Failed to read config file {self.config_file}: {e}")
        return values

    def _get(self, env_name: str, file_key: str) -> Optional[str]:
        value = os.environ.get(env_name)
        if value:
            return value
        return self._load_file().get(file_key)

    def _get_int(self, env_name: str, file_key: str, default: int) -> int:
        raw = self._get(env_name, file_key)
        if raw is None:
            return default
        try:
            return int(raw)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid integer for {env_name}: {raw!r}"
            ) from e

    @property
    def api_key(self) -> Optional[str]:
        """API key for the object storage gateway."""
        return self._get(ENV_API_KEY, "api_key")

    @property
    def api_url(self) -> str:
        """Base URL of the object storage gateway."""
        return self._get(ENV_API_URL, "api_url") or DEFAULT_API_URL

    @property
    def s3_endpoint_url(self) -> Optional[str]:
        """Endpoint of an S3 compatible service, None for AWS."""
        return self._get(ENV_S3_ENDPOINT_URL, "s3_endpoint_url")

    @property
    def s3_region(self) -> Optional[str]:
        return self._get(ENV_S3_REGION, "s3_region")

    @property
    def part_size(self) -> int:
        """Default multipart part size in bytes."""
        return self._get_int(ENV_PART_SIZE, "part_size", DEFAULT_PART_SIZE)

    @property
    def max_concurrent_transfers(self) -> int:
        """Default number of concurrent transfers."""
        return self._get_int(
            ENV_MAX_CONCURRENT,
            "max_concurrent_transfers",
            DEFAULT_MAX_CONCURRENT_TRANSFERS,
        )

    def is_configured(self) -> bool:
        """Check whether a gateway API key is available."""
        return bool(self.api_key)

    def get_config_path(self) -> Path:
        """Path of the config file."""
        return self.config_file

    def save_api_key(self, api_key: str) -> None:
        """Store the API key in the config file, keeping other entries."""
        values = self._load_file()
        values["api_key"] = api_key

        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            for key, value in sorted(values.items()):
                f.write(f"{key}={value}\n")
        # API key is a secret
        self.config_file.chmod(0o600)
        logger.debug(f"Saved API key to {self.config_file}")


config = Config()
