import sys

from payrelay.cli import main

sys.exit(main())
