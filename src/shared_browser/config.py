"""Configuration for the shared browser server.

Settings come from environment variables (optionally a ``.env`` file) through
pydantic-settings. The CLI layers its own options on top with
``ServerSettings.model_copy(update=...)``.
"""

import logging
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared_browser.browser.profile import LaunchProfile

logger = logging.getLogger(__name__)

DEFAULT_CHANNELS = 'chrome,chrome-beta,msedge'
DEFAULT_SUPPRESSED_CONSOLE_TEXT = 'Could not establish connection. Receiving end does not exist.'

_TRUTHY = ('1', 'true', 'yes', 'on')


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(',') if part.strip()]


def _parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


class ServerSettings(BaseSettings):
    """Environment variable configuration using pydantic-settings."""

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='ignore',
    )

    # Control surface
    SHARED_BROWSER_PORT: int = Field(default=9223, description='First port to try')
    SHARED_BROWSER_STRICT_PORT: str = Field(default='false', description='Fail instead of incrementing the port')
    SHARED_BROWSER_HOST: str = Field(default='0.0.0.0', description='Listen host')

    # Browser launch
    SHARED_EXTENSIONS_DIRS: str = Field(default='', description='Comma-separated extension directories')
    EXTENSION_DIRS: str = Field(default='', description='Comma-separated extension directories (alias)')
    SHARED_BROWSER_CHANNELS: str = Field(default=DEFAULT_CHANNELS, description='Ordered release channels to try')
    CHROME_PATH: str | None = Field(default=None, description='Explicit browser executable')
    SHARED_BROWSER_HEADLESS: str = Field(default='false', description='Launch headless (CI only)')
    SHARED_BROWSER_USER_DATA_DIR: str = Field(
        default='tools/shared-browser/user-data',
        description='Persistent profile directory, reused across restarts',
    )

    # Actions
    SHARED_BROWSER_DEFAULT_TIMEOUT_MS: int = Field(default=45000, description='Default action timeout')

    # Logging
    SHARED_BROWSER_LOG_LEVEL: str = Field(default='info', description='Minimum log level')
    SHARED_BROWSER_LOG_DIR: str = Field(default='logs', description='Structured log directory')
    SHARED_BROWSER_SUPPRESS_CONSOLE: str = Field(default='true', description='Mute the benign console error')
    SHARED_BROWSER_SUPPRESS_CONSOLE_PATTERN: str = Field(
        default=DEFAULT_SUPPRESSED_CONSOLE_TEXT,
        description='Console error text muted from the event stream',
    )

    @property
    def port(self) -> int:
        return self.SHARED_BROWSER_PORT

    @property
    def host(self) -> str:
        return self.SHARED_BROWSER_HOST

    @property
    def strict_port(self) -> bool:
        return _parse_flag(self.SHARED_BROWSER_STRICT_PORT)

    @property
    def headless(self) -> bool:
        return _parse_flag(self.SHARED_BROWSER_HEADLESS)

    @property
    def suppress_console(self) -> bool:
        return _parse_flag(self.SHARED_BROWSER_SUPPRESS_CONSOLE)

    @property
    def suppressed_console_text(self) -> str | None:
        if not self.suppress_console:
            return None
        return self.SHARED_BROWSER_SUPPRESS_CONSOLE_PATTERN or None

    @property
    def default_timeout_ms(self) -> int:
        return self.SHARED_BROWSER_DEFAULT_TIMEOUT_MS

    @property
    def log_level(self) -> int:
        level = logging.getLevelName(self.SHARED_BROWSER_LOG_LEVEL.upper())
        return level if isinstance(level, int) else logging.INFO

    @property
    def log_dir(self) -> Path:
        return Path(self.SHARED_BROWSER_LOG_DIR).expanduser().resolve()

    @property
    def user_data_dir(self) -> Path:
        return Path(self.SHARED_BROWSER_USER_DATA_DIR).expanduser().resolve()

    @property
    def channels(self) -> list[str]:
        return _split_csv(self.SHARED_BROWSER_CHANNELS)

    @property
    def executable_path(self) -> str | None:
        if self.CHROME_PATH and self.CHROME_PATH.strip():
            return self.CHROME_PATH.strip()
        return None

    @property
    def extension_dirs(self) -> list[str]:
        """Extension directories from both variables, merged in order and made absolute."""
        merged: list[str] = []
        for raw in _split_csv(self.SHARED_EXTENSIONS_DIRS) + _split_csv(self.EXTENSION_DIRS):
            path = str(Path(raw).expanduser().resolve())
            if path not in merged:
                merged.append(path)
        return merged

    def with_extensions(self, extra_dirs: list[str]) -> 'ServerSettings':
        """Return a copy with additional extension directories appended."""
        if not extra_dirs:
            return self
        joined = ','.join(_split_csv(self.SHARED_EXTENSIONS_DIRS) + list(extra_dirs))
        return self.model_copy(update={'SHARED_EXTENSIONS_DIRS': joined})

    def to_launch_profile(self) -> LaunchProfile:
        """Build the browser launch profile for this configuration."""
        return LaunchProfile(
            user_data_dir=self.user_data_dir,
            extension_dirs=self.extension_dirs,
            executable_path=self.executable_path,
            channels=self.channels,
            headless=self.headless,
            default_timeout_ms=self.default_timeout_ms,
        )


def load_settings(**overrides: Any) -> ServerSettings:
    """Load settings from the environment, then apply non-None overrides."""
    settings = ServerSettings()
    update = {key: value for key, value in overrides.items() if value is not None}
    if update:
        settings = settings.model_copy(update=update)
    return settings
