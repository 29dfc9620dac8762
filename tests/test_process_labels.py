from __future__ import annotations

import json
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import cv2
import numpy as np

import process_labels
from generate_test_images import render_label_scene
from label_ocr import LabelFields
from manifest_validation import validate_manifest
from process_labels import evaluate_candidate, main, scan_label


class TestScanLabel(unittest.TestCase):
    def test_photo_without_red_tries_every_erosion_level(self) -> None:
        scene = render_label_scene(with_label=False)
        with patch.object(process_labels, "find_candidate_contours", wraps=process_labels.find_candidate_contours) as finder, \
                patch.object(process_labels, "ocr_label") as ocr, \
                patch.object(process_labels, "decode_barcode") as decoder:
            result = scan_label(scene, max_erode_iterations=4)

        self.assertEqual([c.args[1] for c in finder.call_args_list], [0, 1, 2, 3, 4])
        self.assertIsNone(result.barcode)
        self.assertFalse(result.found)
        self.assertIsNone(result.erode_iterations)
        self.assertEqual(result.candidates_evaluated, 0)
        self.assertTrue(result.fields.is_empty())
        ocr.assert_not_called()
        decoder.assert_not_called()

    def test_first_decoded_barcode_stops_the_search(self) -> None:
        scene = render_label_scene(angle=8.0)
        with patch.object(process_labels, "find_candidate_contours", wraps=process_labels.find_candidate_contours) as finder, \
                patch.object(process_labels, "ocr_label", return_value=LabelFields(game="Pokemon")), \
                patch.object(process_labels, "decode_barcode", return_value="12345678") as decoder:
            result = scan_label(scene, max_erode_iterations=4)

        self.assertEqual(result.barcode, "12345678")
        self.assertEqual(result.erode_iterations, 0)
        self.assertEqual(result.fields.game, "Pokemon")
        self.assertEqual(result.candidates_evaluated, 1)
        self.assertEqual(finder.call_count, 1)
        self.assertEqual(decoder.call_count, 1)

    def test_ocr_runs_on_every_accepted_candidate(self) -> None:
        scene = render_label_scene()
        with patch.object(process_labels, "ocr_label", return_value=LabelFields(card_name="Blastoise")) as ocr, \
                patch.object(process_labels, "decode_barcode", return_value=None):
            result = scan_label(scene, max_erode_iterations=4)

        # the solid label survives every erosion level
        self.assertEqual(ocr.call_count, 5)
        self.assertEqual(result.candidates_evaluated, 5)
        self.assertIsNone(result.barcode)
        self.assertEqual(result.fields.card_name, "Blastoise")

    def test_last_extracted_fields_are_kept(self) -> None:
        scene = render_label_scene()
        outcomes = [LabelFields(game="First"), LabelFields(game="Second"), None, None, None]
        with patch.object(process_labels, "ocr_label", side_effect=outcomes), \
                patch.object(process_labels, "decode_barcode", return_value=None):
            result = scan_label(scene, max_erode_iterations=4)
        self.assertEqual(result.fields.game, "Second")

    def test_erosion_limit_is_configurable(self) -> None:
        scene = render_label_scene(with_label=False)
        with patch.object(process_labels, "find_candidate_contours", return_value=[]) as finder:
            scan_label(scene, max_erode_iterations=0)
        self.assertEqual(finder.call_count, 1)

        with patch.object(process_labels, "MAX_ERODE_ITERATIONS", 2), \
                patch.object(process_labels, "find_candidate_contours", return_value=[]) as finder:
            scan_label(scene)
        self.assertEqual(finder.call_count, 3)

    def test_small_contour_is_rejected_before_ocr(self) -> None:
        scene = render_label_scene()
        contour = np.array([[[0, 0]], [[10, 0]], [[10, 5]], [[0, 5]]], dtype=np.int32)
        with patch.object(process_labels, "ocr_label") as ocr, \
                patch.object(process_labels, "decode_barcode") as decoder:
            outcome = evaluate_candidate(scene, contour)
        self.assertFalse(outcome.accepted)
        self.assertIsNone(outcome.barcode)
        self.assertIsNone(outcome.fields)
        ocr.assert_not_called()
        decoder.assert_not_called()

    def test_accepted_candidate_is_enhanced_before_reading(self) -> None:
        scene = render_label_scene(label_size=(207, 60))
        contours = process_labels.find_candidate_contours(process_labels.get_red_mask(scene), 0)
        with patch.object(process_labels, "ocr_label", return_value=None) as ocr, \
                patch.object(process_labels, "decode_barcode", return_value=None) as decoder:
            outcome = evaluate_candidate(scene, contours[0])

        self.assertTrue(outcome.accepted)
        label_image = ocr.call_args[0][0]
        self.assertGreaterEqual(label_image.shape[0], 250)
        barcode_image = decoder.call_args[0][0]
        self.assertLess(barcode_image.shape[1], label_image.shape[1])


class TestConfiguration(unittest.TestCase):
    def test_modules_share_one_configuration(self) -> None:
        import label_config
        import label_ocr
        import label_regions

        for module in (label_regions, label_ocr, process_labels):
            with self.subTest(module=module.__name__):
                self.assertIs(module.DEBUG, label_config.DEBUG)
        self.assertEqual(label_ocr.OCR_CONFIG, label_config.OCR_CONFIG)
        self.assertEqual(process_labels.MAX_ERODE_ITERATIONS, label_config.MAX_ERODE_ITERATIONS)
        self.assertEqual(process_labels.SAVE_CROPS_DIR, label_config.SAVE_CROPS_DIR)

    def test_empty_result_has_no_barcode_or_level(self) -> None:
        result = process_labels.LabelScanResult()
        self.assertIsNone(result.barcode)
        self.assertIsNone(result.erode_iterations)
        self.assertTrue(result.fields.is_empty())


class TestCommandLine(unittest.TestCase):
    def setUp(self) -> None:
        self.root = Path(tempfile.mkdtemp(prefix="psa_labels_"))

    def tearDown(self) -> None:
        shutil.rmtree(self.root, ignore_errors=True)

    def test_manifest_for_photo_without_label(self) -> None:
        photo = self.root / "empty.jpg"
        cv2.imwrite(str(photo), render_label_scene(with_label=False))
        manifest = self.root / "out" / "results.json"

        status = main([str(photo), "--manifest", str(manifest)])

        self.assertEqual(status, 0)
        data = json.loads(manifest.read_text(encoding="utf-8"))
        self.assertEqual(len(data["results"]), 1)
        entry = data["results"][0]
        self.assertEqual(entry["source"], str(photo))
        self.assertIsNone(entry["barcode"])
        self.assertIsNone(entry["error"])
        self.assertEqual(set(entry["fields"].values()), {""})

        ok, issues = validate_manifest(manifest, expect_barcodes=False)
        self.assertTrue(ok, issues)

    def test_unreadable_and_unsupported_photos_are_reported(self) -> None:
        manifest = self.root / "results.json"
        missing = self.root / "missing.jpg"
        notes = self.root / "notes.txt"
        notes.write_text("not an image")

        status = main([str(missing), str(notes), "--manifest", str(manifest)])

        self.assertEqual(status, 1)
        entries = json.loads(manifest.read_text(encoding="utf-8"))["results"]
        self.assertEqual([e["error"] for e in entries], ["unreadable image", "unsupported file type"])
        ok, issues = validate_manifest(manifest, expect_barcodes=True)
        self.assertTrue(ok, issues)

    def test_found_barcode_is_written(self) -> None:
        photo = self.root / "label.png"
        cv2.imwrite(str(photo), render_label_scene(angle=-10.0))
        manifest = self.root / "results.json"

        with patch.object(process_labels, "ocr_label", return_value=LabelFields(grade="PSA 10")), \
                patch.object(process_labels, "decode_barcode", return_value="87654321"):
            status = main([str(photo), "--manifest", str(manifest), "--max-erode-iterations", "1"])

        self.assertEqual(status, 0)
        entry = json.loads(manifest.read_text(encoding="utf-8"))["results"][0]
        self.assertEqual(entry["barcode"], "87654321")
        self.assertEqual(entry["erode_iterations"], 0)
        self.assertEqual(entry["fields"]["grade"], "PSA 10")
        ok, issues = validate_manifest(manifest, expect_barcodes=True)
        self.assertTrue(ok, issues)


if __name__ == "__main__":
    unittest.main()
