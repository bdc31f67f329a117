"""Allow ``python -m termbridge``; the supervisor spawns the engine this way."""

from termbridge.cli.main import cli

if __name__ == "__main__":
    cli(prog_name="termbridge")
