"""Entry point for running nanoscout as a module: python -m nanoscout"""

from nanoscout.cli.main import app

if __name__ == "__main__":
    app()
