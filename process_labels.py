import argparse
import json
import os
import sys
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

import cv2
import numpy as np
import pillow_heif
from PIL import Image

from label_config import DEBUG, MAX_ERODE_ITERATIONS, SAVE_CROPS_DIR
from label_ocr import LabelFields, ocr_label
from label_regions import (
    barcode_region,
    decode_barcode,
    enhance_label_image,
    find_candidate_contours,
    get_red_mask,
    is_label_sized,
    rectify_contour,
)

# --- Configuration ---
SUPPORTED_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.heic')

FIELD_LABELS = (
    ("game", "Game"),
    ("number_in_set", "Number in set"),
    ("card_name", "Card name"),
    ("grade", "Grade"),
    ("subset", "Subset"),
    ("serial", "Serial"),
)


@dataclass
class CandidateOutcome:
    accepted: bool = False
    barcode: Optional[str] = None
    fields: Optional[LabelFields] = None


@dataclass
class LabelScanResult:
    barcode: Optional[str] = None
    fields: LabelFields = field(default_factory=LabelFields)
    erode_iterations: Optional[int] = None
    candidates_evaluated: int = 0

    @property
    def found(self):
        return self.barcode is not None


# --- Helper Functions ---
def read_image_universal(filepath):
    """To take any valid filepath and return a standardized OpenCV image object."""
    try:
        lower = filepath.lower()
        if lower.endswith(('.jpg', '.jpeg', '.png')):
            return cv2.imread(filepath)
        elif lower.endswith('.heic'):
            heif_file = pillow_heif.read_heif(filepath)
            image = Image.frombytes(
                heif_file.mode,
                heif_file.size,
                heif_file.data,
                "raw",
                heif_file.mode,
                heif_file.stride,
            )
            return cv2.cvtColor(np.array(image), cv2.COLOR_RGB2BGR)
    except (OSError, ValueError, cv2.error) as e:
        print(f"Error reading or converting {filepath}: {e}")
        return None
    return None


def save_candidate_crops(label_image, barcode_image, tag):
    """Writes a label crop and its barcode zone to SAVE_CROPS_DIR."""
    try:
        os.makedirs(SAVE_CROPS_DIR, exist_ok=True)
        cv2.imwrite(os.path.join(SAVE_CROPS_DIR, f"{tag}_LABEL.jpg"), label_image)
        if barcode_image.size:
            cv2.imwrite(os.path.join(SAVE_CROPS_DIR, f"{tag}_BARCODE.jpg"), barcode_image)
    except (OSError, cv2.error) as exc:
        print(f"Warning: Could not save crops for {tag} ({exc}).")


def evaluate_candidate(source_image, contour, tag="candidate"):
    """Rectifies one contour and, if it is label-shaped, runs OCR and barcode decoding on it."""
    label_image = rectify_contour(source_image, contour)
    if not is_label_sized(label_image):
        return CandidateOutcome()

    label_image = enhance_label_image(label_image)
    fields = ocr_label(label_image)
    barcode_image = barcode_region(label_image)
    barcode = decode_barcode(barcode_image)

    if SAVE_CROPS_DIR:
        save_candidate_crops(label_image, barcode_image, tag)
    if DEBUG:
        h, w = label_image.shape[:2]
        print(f"[DEBUG] {tag}: label {w}x{h} points={len(contour)} barcode={barcode!r} fields={fields}")
    return CandidateOutcome(accepted=True, barcode=barcode, fields=fields)


def scan_label(source_image, max_erode_iterations=None):
    """Searches a photograph for the red grading label, eroding harder until a barcode decodes.

    OCR runs on every label-shaped candidate; the first decoded barcode ends the search.
    """
    if max_erode_iterations is None:
        max_erode_iterations = MAX_ERODE_ITERATIONS

    result = LabelScanResult()
    mask = get_red_mask(source_image)
    for erode_iterations in range(max_erode_iterations + 1):
        contours = find_candidate_contours(mask, erode_iterations)
        if DEBUG:
            print(f"[DEBUG] Erode {erode_iterations}: {len(contours)} contours.")
        for index, contour in enumerate(contours):
            outcome = evaluate_candidate(source_image, contour, tag=f"erode{erode_iterations}_c{index:03d}")
            if not outcome.accepted:
                continue
            result.candidates_evaluated += 1
            if outcome.fields is not None:
                result.fields = outcome.fields
            if outcome.barcode is not None:
                result.barcode = outcome.barcode
                result.erode_iterations = erode_iterations
                return result
    return result


def result_entry(source, result=None, error=None):
    """Builds the manifest record for one photograph."""
    fields = result.fields if result is not None else LabelFields()
    return {
        "source": source,
        "barcode": result.barcode if result is not None else None,
        "erode_iterations": result.erode_iterations if result is not None else None,
        "fields": fields.to_dict(),
        "error": error,
    }


def write_manifest(path, entries):
    """Writes the scan results as a JSON manifest."""
    data = {"generated": date.today().strftime('%Y-%m-%d'), "results": entries}
    try:
        folder = os.path.dirname(path)
        if folder:
            os.makedirs(folder, exist_ok=True)
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, ensure_ascii=False)
    except OSError as exc:
        print(f"  - Could not write manifest: {exc}")


def print_result(result):
    print(f"  - Barcode: {result.barcode or ''}")
    fields = result.fields.to_dict()
    for key, label in FIELD_LABELS:
        print(f"  - {label}: {fields[key]}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Read the barcode and text of graded card labels")
    parser.add_argument("photos", nargs="+", help="Photographs of graded card holders")
    parser.add_argument("--manifest", default=None, help="Write results to this JSON file")
    parser.add_argument(
        "--max-erode-iterations",
        type=int,
        default=MAX_ERODE_ITERATIONS,
        help="Highest erosion strength to try (default %(default)s)",
    )
    args = parser.parse_args(argv)

    entries = []
    failures = 0
    for photo in args.photos:
        print(f"--- Processing {photo} ---")
        if not photo.lower().endswith(SUPPORTED_EXTENSIONS):
            print(f"Error: Unsupported file type for {photo}.")
            entries.append(result_entry(photo, error="unsupported file type"))
            failures += 1
            continue
        image = read_image_universal(photo)
        if image is None:
            print(f"Error: {photo} could not be read. Check file integrity.")
            entries.append(result_entry(photo, error="unreadable image"))
            failures += 1
            continue

        result = scan_label(image, args.max_erode_iterations)
        print_result(result)
        entries.append(result_entry(photo, result))

    if args.manifest:
        write_manifest(args.manifest, entries)
        print(f"\n--- Wrote results for {len(entries)} photo(s) to {args.manifest} ---")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
