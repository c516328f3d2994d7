"""Entry point for the Gorgon CLI.

Running ``python -m gorgon`` dispatches to the click group in the cli module.
"""

from .cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
