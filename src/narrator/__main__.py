"""Entry point for running narrator as a module."""

from .cli import app


def main() -> None:
    """Main entry point for the narrator CLI application."""
    app()


if __name__ == "__main__":
    main()
