"""
Entry point for running krunk as a module.

Usage:
    python -m krunk --scene scenarios/005
"""

from krunk.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
