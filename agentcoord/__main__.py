import sys

from agentcoord.cli import main

sys.exit(main())
