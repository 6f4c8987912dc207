"""Run the CRM CLI: ``python -m open_crm``."""

import sys

from open_crm.cli import main

if __name__ == "__main__":
    sys.exit(main())
