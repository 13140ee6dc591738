"""spawnkit entry point.

Supports: python -m spawnkit
"""

from .app import main

if __name__ == "__main__":
    main()
