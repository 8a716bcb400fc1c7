import sys

from certledger.cli import main

sys.exit(main())
