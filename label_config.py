import os

# --- Configuration (environment overrides) ---
DEBUG = os.environ.get("PSA_DEBUG", "").lower() in {"1", "true", "yes", "on"}

# Erosion strengths 0..MAX_ERODE_ITERATIONS are tried in order until a barcode decodes.
MAX_ERODE_ITERATIONS = int(os.environ.get("PSA_MAX_ERODE_ITERATIONS", "4"))

OCR_CONFIG = os.environ.get("PSA_OCR_CONFIG", "--psm 3 -l eng")

# When set, accepted label crops and their barcode zones are written here.
SAVE_CROPS_DIR = os.environ.get("PSA_SAVE_CROPS", "")
