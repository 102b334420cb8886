import os
import sys

sys.path.insert(0, os.getcwd())

from portsurgeon.server.server import main

if __name__ == "__main__":
    print("🚀 Starting PortSurgeon API...")
    main()
