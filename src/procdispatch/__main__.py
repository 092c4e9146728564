"""procdispatch entry point.

Supports: python -m procdispatch -- PROGRAM [ARGS...]
"""

import sys

from .app import main

if __name__ == "__main__":
    sys.exit(main())
