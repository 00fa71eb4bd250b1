"""Entry point for ``python -m metals_standalone``."""

from metals_standalone.cli.commands import app

if __name__ == "__main__":
    app()
