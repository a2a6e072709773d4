# tests/conftest.py
import asyncio
import os
import sys

# Settings are read at import time, so these must be in place before the app is imported.
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("INSTRUCTOR_PIN", "4321")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("LOCAL_TIMEZONE", "UTC")

if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
