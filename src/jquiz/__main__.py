"""Main entry point for the bot."""
from jquiz.app import QuizBot
from jquiz.config import ensure_directories
from jquiz.logging_config import setup_logging


def main() -> None:
    """Run the bot."""
    # Ensure all required directories exist
    ensure_directories()

    setup_logging("Starting Jquiz ...")

    QuizBot().run()


if __name__ == "__main__":
    main()
