"""Entry point for `python -m chatrelay`."""

from .cli import app


def main():
    """Run the chatrelay CLI."""
    app(prog_name="chatrelay")


if __name__ == "__main__":
    main()
