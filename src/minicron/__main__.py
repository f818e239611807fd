"""Entry point for running the daemon as a module (python -m minicron)."""

import sys


def main() -> None:
    """Main entry point for the daemon module."""
    from minicron.cli import crond_main

    sys.exit(crond_main())


if __name__ == "__main__":
    main()
