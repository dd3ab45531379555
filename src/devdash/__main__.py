"""Allow running devdash as ``python -m devdash``."""

from devdash.cli import main

if __name__ == "__main__":
    main()
