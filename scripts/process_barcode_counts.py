#!/usr/bin/env python3
"""
Barcode Count Processing Pipeline - Main Entry Point

This script serves as the main entry point with zero business logic.
All processing is delegated to lintrace.main.
"""

import sys
from pathlib import Path

# Allow running from a source checkout without installing
sys.path.insert(0, str(Path(__file__).parent.parent))

from lintrace.main import main


if __name__ == "__main__":
    sys.exit(main())
