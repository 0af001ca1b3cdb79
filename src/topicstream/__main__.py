"""CLI entry point.

Run with:
    python -m topicstream
"""

import sys

from topicstream.cli import main

if __name__ == "__main__":
    sys.exit(main())
