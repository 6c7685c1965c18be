#!/usr/bin/env python3
"""
Policy RBAC Sync entry point.

Runs the controller or one of its maintenance commands, see --help.
"""

import sys

from .libs.main_app import main

if __name__ == "__main__":
    sys.exit(main())
