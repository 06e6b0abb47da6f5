"""
secretsvault: encrypted secrets vault and env-file synchronization.

Store secrets once, discover where the code needs them, and project
them into every service's .env file without ever losing a line.
"""

import os

__version__ = "0.1.0"

REPO_ROOT = os.environ.get("SECRETSVAULT_ROOT", ".")
