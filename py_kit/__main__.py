import sys

from py_kit.cli import main

sys.exit(main())
