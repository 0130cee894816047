import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent
for pattern in ("libs/*/src", "apps/*/src"):
    for src in ROOT.glob(pattern):
        if src.is_dir() and str(src) not in sys.path:
            sys.path.insert(0, str(src))
