"""
StalkerKit Module Entry Point
==============================

Allows running the StalkerKit CLI via: python -m stalker
"""

from stalker.cli import main

if __name__ == "__main__":
    main()
