"""
rigid_icp command-line registration

CLI Usage:
    python main.py source.pcd target.pcd [--estimator huber] [--output registered.pcd]

See rigid_icp/cli.py for all options and environment variables.
"""

import sys

from rigid_icp.cli import main

if __name__ == "__main__":
    sys.exit(main())
