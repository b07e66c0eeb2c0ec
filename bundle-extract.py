#!/usr/bin/env python3
"""
Bundle Extract Entry Point

This script provides a simple entry point for running the tool from a
source checkout. All application logic is contained in the
olm_extractor.libs.main_app module.
"""

import sys
from pathlib import Path

# Make the olm_extractor package importable without installing it
sys.path.insert(0, str(Path(__file__).parent))

if __name__ == "__main__":
    from olm_extractor.libs.main_app import main
    main()
