import os
from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# How many times BracketEngine re-reads a target match after a version conflict
ADVANCE_MAX_RETRIES = int(os.getenv("ADVANCE_MAX_RETRIES", "3"))

WINNING_SCORES = (11, 15, 21)
DEFAULT_WINNING_SCORE = int(os.getenv("DEFAULT_WINNING_SCORE", "11"))

BRACKET_SIZES = (2, 4, 8, 16, 32)

# Empty means mutating routes are open (local use)
ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", "")
