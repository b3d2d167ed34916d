"""
Entry point for running spec_pilot as a module.

Allows running as: python -m spec_pilot
"""

from spec_pilot.cli import cli_main

if __name__ == "__main__":
    cli_main()
