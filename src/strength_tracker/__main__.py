"""``python -m strength_tracker`` entry point."""

from strength_tracker import cli

if __name__ == "__main__":
    cli.app()
