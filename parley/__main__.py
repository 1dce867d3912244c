"""Entry point for python -m parley execution.

This module allows running Parley as a module:
    python -m parley suggest "see you at 8?" --sender alice
    python -m parley serve
    python -m parley --help
"""

from parley.cli import run

if __name__ == "__main__":
    run()
