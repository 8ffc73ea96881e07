"""Command-line scripts for the call-center pipeline."""

import sys
from pathlib import Path

# Setup path once
sys.path.insert(0, str(Path(__file__).parent.parent))
