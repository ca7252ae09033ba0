"""Main entry point for the Parlomo platform."""

from parlomo_platform.main import app, run

__all__ = ["app"]

if __name__ == "__main__":
    run()
