import sys

from portwarden.cli import main

sys.exit(main())
