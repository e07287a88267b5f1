"""Unit tests for the configuration layer."""

import pytest

from pyobjsync.config import DEFAULT_API_URL, Config
from pyobjsync.exceptions import ConfigurationError
from pyobjsync.utils import DEFAULT_MAX_CONCURRENT_TRANSFERS, DEFAULT_PART_SIZE


@pytest.fixture
def clean_env(monkeypatch):
    """Remove pyobjsync environment variables."""
    for name in (
        "PYOBJSYNC_API_KEY",
        "PYOBJSYNC_API_URL",
        "PYOBJSYNC_PART_SIZE",
        "PYOBJSYNC_MAX_CONCURRENT_TRANSFERS",
        "PYOBJSYNC_S3_ENDPOINT_URL",
        "PYOBJSYNC_S3_REGION",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestConfig:
    """Tests for Config."""

    def test_defaults(self, tmp_path, clean_env):
        """Test defaults without file or environment."""
        config = Config(config_dir=tmp_path)
        assert config.api_key is None
        assert config.api_url == DEFAULT_API_URL
        assert config.part_size == DEFAULT_PART_SIZE
        assert config.max_concurrent_transfers == DEFAULT_MAX_CONCURRENT_TRANSFERS
        assert config.s3_endpoint_url is None
        assert config.s3_region is None
        assert not config.is_configured()

    def test_environment_wins_over_file(self, tmp_path, clean_env):
        """Test that environment variables override the config file."""
        (tmp_path / "config").write_text("api_key=from_file\n")
        clean_env.setenv("PYOBJSYNC_API_KEY", "from_env")
        config = Config(config_dir=tmp_path)
        assert config.api_key == "from_env"

    def test_read_config_file(self, tmp_path, clean_env):
        """Test reading KEY=VALUE lines with comments."""
        (tmp_path / "config").write_text(
            "# pyobjsync\nAPI_KEY = secret\napi_url=http://gw:9000/api/v1\n"
            "part_size=1048576\n"
        )
        config = Config(config_dir=tmp_path)
        assert config.api_key == "secret"
        assert config.api_url == "http://gw:9000/api/v1"
        assert config.part_size == 1048576
        assert config.is_configured()

    def test_s3_settings(self, tmp_path, clean_env):
        """Test the S3 endpoint and region settings."""
        (tmp_path / "config").write_text("s3_endpoint_url=http://minio:9000\n")
        clean_env.setenv("PYOBJSYNC_S3_REGION", "eu-west-1")
        config = Config(config_dir=tmp_path)
        assert config.s3_endpoint_url == "http://minio:9000"
        assert config.s3_region == "eu-west-1"

    def test_invalid_integer(self, tmp_path, clean_env):
        """Test that a malformed integer is a configuration error."""
        clean_env.setenv("PYOBJSYNC_MAX_CONCURRENT_TRANSFERS", "many")
        config = Config(config_dir=tmp_path)
        with pytest.raises(ConfigurationError, match="PYOBJSYNC_MAX_CONCURRENT"):
            config.max_concurrent_transfers

    def test_save_api_key(self, tmp_path, clean_env):
        """Test saving the API key keeps other entries and restricts access."""
        config_dir = tmp_path / "nested"
        config = Config(config_dir=config_dir)
        config_dir.mkdir()
        (config_dir / "config").write_text("api_url=http://gw/api\n")

        config.save_api_key("new_key")

        assert config.api_key == "new_key"
        assert config.api_url == "http://gw/api"
        assert config.get_config_path().stat().st_mode & 0o777 == 0o600
