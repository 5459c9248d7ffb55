# run_server.py
import sys

from watchoffline.main import cli

if __name__ == "__main__":
    sys.exit(cli(sys.argv[1:]))
