#!/usr/bin/env python3
"""
Runner script for the image pipeline.
This makes it easy to run the tool with uv: uv run python scripts/run.py -s <src> -o <out>
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
from image_pipeline.cli import main

if __name__ == "__main__":
    sys.exit(main())
