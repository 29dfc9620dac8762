#!/usr/bin/env python3
"""Validate label scan manifests for expected structure.

Usage:
    python manifest_validation.py --manifest path/to/results.json
    python manifest_validation.py --manifest results.json --expect-barcodes

The script checks that each result entry written by process_labels.py
carries the six label fields as strings, that any decoded barcode is an
8 digit value, and that entries flagged with an error carry no barcode.
With --expect-barcodes every readable photo must have a barcode.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

EXPECTED_FIELDS = [
    "game",
    "number_in_set",
    "card_name",
    "grade",
    "subset",
    "serial",
]
EXPECTED_KEYS = ["source", "barcode", "erode_iterations", "fields", "error"]
BARCODE_LENGTH = 8


class ManifestIssue(Exception):
    """Raised when validation detects a fatal problem."""


def _load_manifest(path: Path) -> dict:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ManifestIssue(f"Manifest {path} does not exist") from exc
    except json.JSONDecodeError as exc:
        raise ManifestIssue(f"Invalid JSON in manifest {path}: {exc}") from exc


def _validate_fields(label: str, fields: object) -> List[str]:
    if not isinstance(fields, dict):
        return [f"{label}: fields entry is not an object"]

    issues: List[str] = []
    missing = sorted(set(EXPECTED_FIELDS) - set(fields))
    if missing:
        issues.append(f"{label}: missing fields {missing}")
    unexpected = sorted(set(fields) - set(EXPECTED_FIELDS))
    if unexpected:
        issues.append(f"{label}: unexpected fields {unexpected}")
    for name in EXPECTED_FIELDS:
        if name in fields and not isinstance(fields[name], str):
            issues.append(f"{label}: field {name} is not a string")
    return issues


def _validate_entry(index: int, entry: object, expect_barcodes: bool) -> List[str]:
    if not isinstance(entry, dict):
        return [f"result {index}: entry is not an object"]

    label = f"result {index} ({entry.get('source', '?')})"
    issues: List[str] = []
    missing = sorted(set(EXPECTED_KEYS) - set(entry))
    if missing:
        issues.append(f"{label}: missing keys {missing}")

    barcode: Optional[str] = entry.get("barcode")
    error = entry.get("error")
    if barcode is not None:
        if not isinstance(barcode, str) or len(barcode) != BARCODE_LENGTH or not barcode.isdigit():
            issues.append(f"{label}: barcode {barcode!r} is not {BARCODE_LENGTH} digits")
        if error:
            issues.append(f"{label}: barcode reported for a photo that failed with {error!r}")
        if entry.get("erode_iterations") is None:
            issues.append(f"{label}: barcode reported without an erosion level")
    elif expect_barcodes and not error:
        issues.append(f"{label}: no barcode decoded")

    issues.extend(_validate_fields(label, entry.get("fields")))
    return issues


def validate_manifest(path: Path, expect_barcodes: bool) -> Tuple[bool, List[str]]:
    data = _load_manifest(path)
    if not isinstance(data, dict) or not isinstance(data.get("results"), list):
        raise ManifestIssue(f"Manifest {path} has no results list")

    issues: List[str] = []
    sources: Dict[str, int] = {}
    for index, entry in enumerate(data["results"]):
        issues.extend(_validate_entry(index, entry, expect_barcodes))
        if isinstance(entry, dict) and "source" in entry:
            source = entry["source"]
            if source in sources:
                issues.append(f"result {index}: duplicate source {source} (first at {sources[source]})")
            else:
                sources[source] = index

    if "generated" not in data:
        issues.append("manifest: missing generated date")

    return (len(issues) == 0, issues)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Validate label scan manifests for QA")
    parser.add_argument("--manifest", type=Path, required=True, help="Results manifest written by process_labels.py")
    parser.add_argument(
        "--expect-barcodes",
        action="store_true",
        help="Require a decoded barcode for every readable photo",
    )
    args = parser.parse_args(argv)

    try:
        ok, issues = validate_manifest(args.manifest, args.expect_barcodes)
    except ManifestIssue as exc:
        print(f"fatal: {exc}")
        return 2

    if not ok:
        print("Manifest validation FAILED:")
        for item in issues:
            print(f"  - {item}")
        return 1

    print("Manifest validation PASSED")
    return 0


if __name__ == "__main__":
    sys.exit(main())
