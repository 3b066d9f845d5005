"""Launch profile for the shared persistent browser session."""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Arguments that reduce automation fingerprints and let login flows work
HARDENED_ARGS: list[str] = [
    '--start-maximized',
    '--no-first-run',
    '--no-default-browser-check',
    '--disable-blink-features=AutomationControlled',
    '--disable-features=BlockThirdPartyCookies',
    # Persist credentials/cookies without system keychain prompts (Linux)
    '--password-store=basic',
    '--use-mock-keychain',
]

# Playwright defaults that identity providers flag, or that block extensions
IGNORED_DEFAULT_ARGS: list[str] = ['--enable-automation', '--disable-extensions']


class LaunchProfile(BaseModel):
    """Browser launch configuration.

    Holds everything the Session Launcher needs to start exactly one
    persistent browser session: the profile directory, extensions to
    preload, and the ordered launch preferences.
    """

    model_config = ConfigDict(
        extra='ignore',
        validate_assignment=True,
        from_attributes=True,
    )

    user_data_dir: Path = Field(description='Persistent profile directory reused across restarts')
    extension_dirs: list[str] = Field(default_factory=list, description='Unpacked extension directories to preload')
    executable_path: str | None = Field(default=None, description='Explicit browser executable, tried first')
    channels: list[str] = Field(default_factory=list, description='Release channels tried in order')
    headless: bool = Field(default=False, description='Run without a visible window')
    default_timeout_ms: int = Field(default=45000, ge=0, description='Default driver timeout for every page')
    args: list[str] = Field(default_factory=list, description='Additional CLI args to pass to the browser')

    def get_args(self) -> list[str]:
        """Get the list of all Chromium CLI launch args for this profile."""
        args = list(HARDENED_ARGS)

        if self.extension_dirs:
            joined = ','.join(self.extension_dirs)
            args.append(f'--disable-extensions-except={joined}')
            args.append(f'--load-extension={joined}')

        args.extend(self.args)
        return args

    def launch_options(self, **strategy: Any) -> dict[str, Any]:
        """Keyword arguments for ``launch_persistent_context``.

        ``strategy`` carries the strategy-specific option, e.g.
        ``channel='chrome'`` or ``executable_path='/usr/bin/chromium'``.
        """
        options: dict[str, Any] = {
            'headless': self.headless,
            'args': self.get_args(),
            'ignore_default_args': list(IGNORED_DEFAULT_ARGS),
        }
        if not self.headless:
            options['no_viewport'] = True
        options.update({key: value for key, value in strategy.items() if value is not None})
        return options

    def ensure_user_data_dir(self) -> Path:
        """Create the profile directory if missing and return it."""
        self.user_data_dir.mkdir(parents=True, exist_ok=True)
        return self.user_data_dir
