import sys

from provisioner.controller import main

sys.exit(main())
