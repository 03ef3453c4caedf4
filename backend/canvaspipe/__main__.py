"""CLI entry point for python -m canvaspipe"""
from canvaspipe.cli.commands import app

if __name__ == "__main__":
    app()
