"""MatchIQ TUI Application entry point."""

import logging

from dotenv import load_dotenv
from textual.app import App

from matchiq.config import LOG_PATH, EngineSettings, ensure_data_dir, load_settings
from matchiq.matching.service import MatchService
from matchiq.storage.database import get_session_factory, init_db
from matchiq.tui.screens import MatchScreen


def configure_logging() -> None:
    """Configure application logging."""
    ensure_data_dir()

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.WARNING)

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    log_path = str(LOG_PATH.resolve())
    has_file_handler = any(
        isinstance(handler, logging.FileHandler)
        and handler.baseFilename == log_path
        for handler in root_logger.handlers
    )
    if not has_file_handler:
        file_handler = logging.FileHandler(LOG_PATH, encoding="utf-8")
        file_handler.setLevel(logging.WARNING)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


class MatchIQApp(App):
    """Main TUI application for MatchIQ."""

    TITLE = "MatchIQ"

    BINDINGS = [
        ("ctrl+q", "quit", "Quit"),
        ("ctrl+c", "quit", "Quit"),
    ]

    def __init__(self, settings: EngineSettings | None = None) -> None:
        super().__init__()
        self.settings = settings or load_settings()
        # Initialize database on startup
        init_db(url=self.settings.database_url)
        self.service = MatchService(get_session_factory(), self.settings)

    def on_mount(self) -> None:
        """Push the match screen when app mounts."""
        self.push_screen(MatchScreen(self.service, self.settings))


def main() -> None:
    """Entry point for the application."""
    load_dotenv()
    configure_logging()
    app = MatchIQApp()
    app.run()


if __name__ == "__main__":
    main()
