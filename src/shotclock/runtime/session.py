"""Foreground session that runs the shot clock until interrupted."""

import logging
import signal
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from shotclock.core.composer import ComposerOptions, SignalComposer
from shotclock.core.config import ConfigManager
from shotclock.core.models import DerivedClock
from shotclock.core.reactive import Disposable
from shotclock.runtime.platform import get_log_file_path

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_installed_handlers: List[logging.Handler] = []


def setup_logging(
    level: str = "INFO", console: bool = False, log_file: Optional[Path] = None
) -> None:
    """Setup application logging.

    Replaces handlers installed by an earlier call, so calling it twice
    does not duplicate output.

    Args:
        level: Log level name
        console: Also log to stderr
        log_file: Log file path (default: ~/.shotclock/logs/shotclock.log)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    for handler in _installed_handlers:
        root_logger.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()

    root_logger.setLevel(log_level)
    formatter = logging.Formatter(LOG_FORMAT)

    # File handler
    file_handler = logging.FileHandler(log_file or get_log_file_path(), encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    _installed_handlers.append(file_handler)

    # Console handler (for --verbose)
    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        _installed_handlers.append(console_handler)

    for handler in _installed_handlers:
        root_logger.addHandler(handler)


class ShotclockSession:
    """Own a SignalComposer for the lifetime of a foreground process."""

    def __init__(
        self,
        config: Optional[ConfigManager] = None,
        directory: Optional[Path] = None,
        **overrides: Any,
    ):
        """Initialize session.

        Args:
            config: Configuration manager (default: load from default location)
            directory: Working directory to watch (default: current directory)
            **overrides: ComposerOptions fields that take precedence over config
        """
        self.config = config or ConfigManager()
        self.directory = directory or Path.cwd()
        self.overrides = overrides
        self.composer: Optional[SignalComposer] = None
        self._subscription: Optional[Disposable] = None
        self._shutdown_event = threading.Event()
        self._previous_handlers: Dict[int, Any] = {}

    def start(self) -> SignalComposer:
        """Build the composer from configuration.

        Returns:
            The running SignalComposer
        """
        if self.composer is None:
            options = ComposerOptions.from_config(
                self.config, start_directory=self.directory, **self.overrides
            )
            self.composer = SignalComposer(options)
        return self.composer

    def run(self, on_update: Callable[[DerivedClock], None]) -> None:
        """Run until stop() is called or SIGINT/SIGTERM arrives.

        Args:
            on_update: Called with every new DerivedClock (on the scheduler thread)
        """
        composer = self.start()
        self._setup_signal_handlers()
        self._subscription = composer.clock.subscribe(on_update)
        logger.info("Shotclock session started")

        try:
            while not self._shutdown_event.wait(0.5):
                pass
        finally:
            self.stop()
            self._restore_signal_handlers()

        logger.info("Shotclock session stopped")

    def stop(self) -> None:
        """Stop the session and release the composer."""
        self._shutdown_event.set()
        if self._subscription is not None:
            self._subscription.dispose()
            self._subscription = None
        if self.composer is not None:
            self.composer.dispose()

    @property
    def is_stopped(self) -> bool:
        return self._shutdown_event.is_set()

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        if threading.current_thread() is not threading.main_thread():
            return
        for signum in (signal.SIGTERM, signal.SIGINT):
            self._previous_handlers[signum] = signal.signal(signum, self._signal_handler)

    def _restore_signal_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            # None means the handler was installed outside Python
            if handler is not None:
                signal.signal(signum, handler)
        self._previous_handlers.clear()

    def _signal_handler(self, signum: int, frame: Any) -> None:
        """Handle shutdown signals."""
        logger.info(f"Received signal {signum}, shutting down...")
        self.stop()
