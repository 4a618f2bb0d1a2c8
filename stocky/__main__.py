"""
Main entry point: ``python -m stocky``.
"""

from stocky.cli import app

if __name__ == "__main__":
    app()
