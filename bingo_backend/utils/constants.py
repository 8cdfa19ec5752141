"""
Constants and environment-driven settings used across the bingo game.
"""

import os

from dotenv import load_dotenv

load_dotenv()

# Card layout
GRID_SIZE = int(os.getenv("BINGO_GRID_SIZE", "5"))  # Must be odd so a true center cell exists
EMPTY_CELL_TEXT = "[Empty]"

if GRID_SIZE < 1 or GRID_SIZE % 2 == 0:
    raise ValueError(f"BINGO_GRID_SIZE must be a positive odd number, got {GRID_SIZE}")

# Resolutions
MAX_RESOLUTION_LENGTH = 500

# Proof uploads
MAX_PROOF_FILE_SIZE_BYTES = 5 * 1024 * 1024  # 5MB
ALLOWED_PROOF_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}
ALLOWED_PROOF_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
