import sys

from inbox_sorter.app.cli import main

if __name__ == "__main__":
    # e.g. python scripts/run_once.py classify --max-results 20 --apply
    sys.exit(main())
