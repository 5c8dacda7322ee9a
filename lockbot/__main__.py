import os

from dotenv import load_dotenv

from lockbot.cli.commands import app

# Load .env file from ~/.lockbot/ if it exists
# Precedence: existing env vars > .env file (override=False)
load_dotenv(os.path.expanduser("~/.lockbot/.env"), override=False)

if __name__ == "__main__":
    app()
