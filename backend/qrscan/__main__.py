import sys

from .interfaces.cli.scan import main

sys.exit(main())
