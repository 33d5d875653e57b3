"""
Global configuration for storycodex.
"""
import os

# Toggle development mode features
DEV_MODE = False  # set to True to use a throwaway in-memory DB

# Database path selection
if DEV_MODE:
    DB_PATH = ":memory:"  # In-memory DB for quick testing
else:
    DB_PATH = os.getenv("STORYCODEX_DB", "storycodex.db")

# Key under which the autosaved snapshot lives in kv_store
SNAPSHOT_KEY = "autosave"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = os.getenv("STORYCODEX_LOG_DIR", "logs")

# Reading speeds (words per minute) used for the reading-time bucket
READING_WPM_FAST = 300
READING_WPM_SLOW = 150

# Characters of plain text shown on each side of a mention excerpt
MENTION_EXCERPT_RADIUS = 60
DEFAULT_MENTION_COLOR = "#4f46e5"

DEFAULT_COMMENT_AUTHOR = "Anonymous"
