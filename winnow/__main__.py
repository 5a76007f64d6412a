"""
Run the winnow command-line interface.

Usage:
    python -m winnow render prompt.json
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
