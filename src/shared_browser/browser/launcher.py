"""Session Launcher: start the one persistent browser context.

Launch preferences are tried in order, first success wins:

1. the explicit executable path, when configured;
2. each configured release channel;
3. Playwright's bundled Chromium. Only this last failure is fatal.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from shared_browser.browser.profile import LaunchProfile
from shared_browser.exceptions import LaunchError

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext, Playwright

logger = logging.getLogger(__name__)

# Every override is guarded so a failing one never breaks the page
STEALTH_INIT_SCRIPT = """
(() => {
  try {
    Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
  } catch (e) {}
  try {
    window.chrome = window.chrome || { runtime: {} };
    window.chrome.runtime = window.chrome.runtime || {};
  } catch (e) {}
  try {
    Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
  } catch (e) {}
  try {
    Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
  } catch (e) {}
})();
"""


@dataclass
class LaunchStrategy:
    """One way of launching the browser."""

    name: str
    options: dict[str, Any] = field(default_factory=dict)
    fatal: bool = False


class SessionLauncher:
    """Launches the persistent context described by a ``LaunchProfile``."""

    def __init__(self, profile: LaunchProfile):
        self.profile = profile
        self.attempts: list[str] = []

    def strategies(self) -> list[LaunchStrategy]:
        """Ordered launch strategies for the profile."""
        strategies: list[LaunchStrategy] = []
        if self.profile.executable_path:
            strategies.append(
                LaunchStrategy(
                    name=f'executable_path={self.profile.executable_path}',
                    options={'executable_path': self.profile.executable_path},
                )
            )
        for channel in self.profile.channels:
            strategies.append(LaunchStrategy(name=f'channel={channel}', options={'channel': channel}))
        strategies.append(LaunchStrategy(name='bundled Chromium', fatal=True))
        return strategies

    async def launch(self, playwright: 'Playwright') -> 'BrowserContext':
        """Launch the persistent context and install the init script.

        Raises:
            LaunchError: When the bundled fallback fails too.
        """
        user_data_dir = self.profile.ensure_user_data_dir()
        if self.profile.extension_dirs:
            logger.info(f'Loading extensions: {", ".join(self.profile.extension_dirs)}')

        self.attempts = []
        context = None
        for strategy in self.strategies():
            options = self.profile.launch_options(**strategy.options)
            try:
                context = await playwright.chromium.launch_persistent_context(str(user_data_dir), **options)
            except Exception as e:
                self.attempts.append(f'{strategy.name}: {e}')
                if strategy.fatal:
                    logger.critical(f'Launch with {strategy.name} failed: {e}')
                    raise LaunchError(f'All browser launch strategies failed, last error: {e}', self.attempts) from e
                logger.warning(f'Launch with {strategy.name} failed: {e}')
                continue
            logger.info(f'Launched with {strategy.name}')
            break

        assert context is not None
        await install_init_script(context)
        return context


async def install_init_script(context: 'BrowserContext') -> None:
    """Install the fingerprint-mitigation script on every current and future page."""
    await context.add_init_script(script=STEALTH_INIT_SCRIPT)
