"""
Allows running the selection CLI via:

    python -m selection
"""

from selection.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
