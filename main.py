#!/usr/bin/env python3
"""Entry point for the wine question router."""

import sys

if __name__ == "__main__":
    from wine_router.main import main
    sys.exit(main())
