from dataclasses import dataclass

import cv2
import numpy as np
from PIL import Image

from label_config import DEBUG

try:
    from pyzbar.pyzbar import decode as zbar_decode, ZBarSymbol
    BARCODE_SYMBOLS = [ZBarSymbol.I25]
except ImportError:
    # pyzbar is installed but the zbar shared library is missing
    zbar_decode = None
    BARCODE_SYMBOLS = None

# --- Configuration ---
# Red wraps around hue 0, so two hue bands are thresholded and combined.
RED_HUE_RANGES = ((0, 10), (160, 180))
MIN_RED_SATURATION = 100
MAX_RED_SATURATION = 255
MIN_RED_VALUE = 100
MAX_RED_VALUE = 255

ERODE_KERNEL = np.ones((3, 3), dtype=np.uint8)

# Physical label: 69mm x 20mm. Anything shorter or squarer is noise.
MIN_LABEL_HEIGHT = 50
MIN_LABEL_ASPECT = 2.5

# Upscale until the label is at least this tall before OCR.
UPSCALE_MIN_HEIGHT = 250
SHARPEN_SIGMA = 3.0

LABEL_WIDTH_MM = 69.0
LABEL_HEIGHT_MM = 20.0
BARCODE_ZONE_MM = {"x": 2.0, "y": 13.0, "width": 19.0, "height": 4.0}
BARCODE_LENGTH = 8


@dataclass(frozen=True)
class RotatedRegion:
    center: tuple
    width: float
    height: float
    angle: float


def red_mask_from_hsv(hsv_image):
    """Marks pixels of an HSV (0-180 hue) image that fall into either red band."""
    combined = None
    for hue_low, hue_high in RED_HUE_RANGES:
        lower = np.array([hue_low, MIN_RED_SATURATION, MIN_RED_VALUE], dtype=np.uint8)
        upper = np.array([hue_high, MAX_RED_SATURATION, MAX_RED_VALUE], dtype=np.uint8)
        band = cv2.inRange(hsv_image, lower, upper)
        # cv2.add saturates at 255, so overlapping bands stay binary
        combined = band if combined is None else cv2.add(combined, band)
    return combined


def get_red_mask(image):
    """Converts a BGR image into a binary mask of label-red pixels."""
    if image is None or image.size == 0:
        shape = image.shape[:2] if image is not None else (0, 0)
        return np.zeros(shape, dtype=np.uint8)
    hsv = cv2.cvtColor(image, cv2.COLOR_BGR2HSV)
    return red_mask_from_hsv(hsv)


def find_candidate_contours(mask, erode_iterations):
    """Erodes the mask `erode_iterations` times and lists every contour found."""
    if mask.size == 0:
        return []
    eroded = cv2.erode(mask, ERODE_KERNEL, iterations=erode_iterations) if erode_iterations else mask.copy()
    contours, _ = cv2.findContours(eroded, cv2.RETR_LIST, cv2.CHAIN_APPROX_SIMPLE)
    return list(contours)


def normalize_rotated_region(region):
    """Folds the rectangle angle into (-45, 45] by swapping width and height."""
    width, height, angle = region.width, region.height, region.angle
    while angle <= -45.0:
        angle += 90.0
        width, height = height, width
    while angle > 45.0:
        angle -= 90.0
        width, height = height, width
    return RotatedRegion(region.center, width, height, angle)


def min_area_region(contour):
    """Fits the minimum-area rotated rectangle around a contour, normalized."""
    center, (width, height), angle = cv2.minAreaRect(contour)
    return normalize_rotated_region(RotatedRegion((float(center[0]), float(center[1])), width, height, angle))


def rectify_region(source_image, region):
    """Rotates the source about the region center and crops the upright region."""
    region = normalize_rotated_region(region)
    width, height = int(region.width), int(region.height)
    if width <= 0 or height <= 0:
        return source_image[0:0, 0:0]

    src_h, src_w = source_image.shape[:2]
    rotation = cv2.getRotationMatrix2D(region.center, region.angle, 1.0)
    rotated = cv2.warpAffine(source_image, rotation, (src_w, src_h), flags=cv2.INTER_LANCZOS4)
    return cv2.getRectSubPix(rotated, (width, height), region.center)


def rectify_contour(source_image, contour):
    """Returns the upright crop of the minimum-area rectangle around `contour`."""
    return rectify_region(source_image, min_area_region(contour))


def is_label_sized(label_image):
    """True when a rectified crop has the height and aspect ratio of a label."""
    if label_image is None or label_image.size == 0:
        return False
    height, width = label_image.shape[:2]
    return height >= MIN_LABEL_HEIGHT and width >= height * MIN_LABEL_ASPECT


def enhance_label_image(label_image):
    """Doubles the crop with Lanczos until it is tall enough, then unsharp-masks it."""
    enhanced = label_image
    while 0 < enhanced.shape[0] < UPSCALE_MIN_HEIGHT:
        enhanced = cv2.resize(enhanced, None, fx=2.0, fy=2.0, interpolation=cv2.INTER_LANCZOS4)
    blurred = cv2.GaussianBlur(enhanced, (0, 0), SHARPEN_SIGMA)
    return cv2.addWeighted(enhanced, 1.5, blurred, -0.5, 0)


def barcode_region(label_image):
    """Crops the fixed barcode zone (19x4mm at 2mm/13mm) out of a rectified label."""
    height, width = label_image.shape[:2]
    zone = BARCODE_ZONE_MM
    size = (
        int(width / LABEL_WIDTH_MM * zone["width"]),
        int(height / LABEL_HEIGHT_MM * zone["height"]),
    )
    center = (
        width / LABEL_WIDTH_MM * (zone["x"] + zone["width"] / 2),
        height / LABEL_HEIGHT_MM * (zone["y"] + zone["height"] / 2),
    )
    if size[0] <= 0 or size[1] <= 0:
        return label_image[0:0, 0:0]
    return cv2.getRectSubPix(label_image, size, center)


def decode_barcode(barcode_image):
    """Decodes an interleaved 2 of 5 barcode; anything not 8 characters long is dropped."""
    if barcode_image is None or barcode_image.size == 0:
        return None
    if zbar_decode is None:
        if DEBUG:
            print("[DEBUG] zbar is not available; skipping barcode decode.")
        return None

    if barcode_image.ndim == 3:
        barcode_image = cv2.cvtColor(barcode_image, cv2.COLOR_BGR2GRAY)
    for result in zbar_decode(Image.fromarray(barcode_image), symbols=BARCODE_SYMBOLS):
        text = result.data.decode("utf-8", "replace")
        if len(text) == BARCODE_LENGTH:
            return text
        if DEBUG:
            print(f"[DEBUG] Discarding barcode {text!r} (length {len(text)}).")
    return None
