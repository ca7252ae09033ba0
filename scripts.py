#!/usr/bin/env python3
"""Development scripts for the Parlomo platform."""

import subprocess
import sys


def start():
    """Start the development server."""
    subprocess.run([
        "uvicorn",
        "parlomo_platform.main:app",
        "--host", "0.0.0.0",
        "--port", "3000",
        "--reload"
    ])


def worker():
    """Start a Celery worker with the beat scheduler embedded."""
    subprocess.run([
        "celery", "-A", "parlomo_platform.tasks.celery_app",
        "worker", "--beat", "--loglevel", "info"
    ])


def test():
    """Run the test suite."""
    subprocess.run(["pytest", "tests/"])


def lint():
    """Run linting and type checking."""
    subprocess.run(["black", "parlomo_platform/"])
    subprocess.run(["mypy", "parlomo_platform/"])


def format_code():
    """Format code with black."""
    subprocess.run(["black", "parlomo_platform/", "tests/"])


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python scripts.py <command>")
        print("Commands: start, worker, test, lint, format")
        sys.exit(1)

    command = sys.argv[1].replace("-", "_")
    if command == "format":
        command = "format_code"
    if hasattr(sys.modules[__name__], command):
        getattr(sys.modules[__name__], command)()
    else:
        print(f"Unknown command: {sys.argv[1]}")
        sys.exit(1)
