"""Allow `python -m statsbuffer`."""

from .cli import app

if __name__ == "__main__":
    app()
