#!/usr/bin/env python

import sys
import os

# Ensure the project root is on the Python path so the package imports without installing
project_root = os.path.dirname(os.path.abspath(__file__))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

try:
    from mavenloader.main import main as run_main_process
except ImportError as e:
    print(f"Error: Could not import the main application module. Is the 'mavenloader' directory available?", file=sys.stderr)
    print(f"Details: {e}", file=sys.stderr)
    sys.exit(1)


if __name__ == "__main__":
    # Execute the main application logic and exit with its status code
    sys.exit(run_main_process())
