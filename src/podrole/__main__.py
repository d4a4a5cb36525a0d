"""Main entry point for the podrole CLI.

Usage:
    python -m podrole --help
    podrole --help  # If installed via pip/uv
"""

from podrole.cli import main

if __name__ == "__main__":
    main()
