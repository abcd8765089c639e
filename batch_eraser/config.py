"""
Centralized configuration constants for the batch eraser pipeline.

Ground rules:
- Lossless PNG intermediates
- One generation call per image, no retries
- Images processed strictly in order
"""

ASPECT_RATIOS = ("9:16", "4:5")
DEFAULT_ASPECT_RATIO = "9:16"

# The generator must see a uniform background in the padding.
PAD_COLOR = (255, 255, 255)

DEFAULT_FEATHER = 15
DEFAULT_OPACITY = 1.0

INTERMEDIATE_MIME_TYPE = "image/png"

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com"
GEMINI_IMAGE_MODEL = "gemini-2.0-flash-exp"
GEMINI_TIMEOUT_S = 60.0

# Kept fixed for every image of a batch.
REMOVAL_PROMPT = (
    "Remove the text, watermark, or object in the highlighted area. "
    "Reconstruct the background seamlessly to match the surrounding texture. High quality."
)

SETTINGS_FILENAME_TEMPLATE = "mask_settings_{ratio}.json"
