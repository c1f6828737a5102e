"""Allow ``python -m oken``."""

from .cli import run

if __name__ == "__main__":
    run()
