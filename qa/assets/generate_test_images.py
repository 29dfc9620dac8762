from pathlib import Path

import cv2
import numpy as np

# Pure red at hue 0 in BGR; falls in the lower red band.
LABEL_RED = (0, 0, 220)
BACKGROUND_GRAY = (128, 128, 128)
PANEL_WHITE = (245, 245, 245)
TEXT_BLACK = (20, 20, 20)

# 69mm x 20mm label scaled to pixels
DEFAULT_LABEL_SIZE = (414, 120)


def label_corners(center, size, angle):
    """Returns the four integer corners of a rotated label rectangle."""
    box = cv2.boxPoints((center, size, angle))
    return np.int32(np.round(box))


def render_label_scene(
    width: int = 800,
    height: int = 600,
    label_size=DEFAULT_LABEL_SIZE,
    angle: float = 0.0,
    center=None,
    border: int = 0,
    with_label: bool = True,
) -> np.ndarray:
    """Draws a gray backdrop with an optional rotated red label.

    With ``border`` > 0 the label is a red frame around a white panel that
    carries dark bars standing in for printed text lines.
    """
    scene = np.full((height, width, 3), BACKGROUND_GRAY, dtype=np.uint8)
    if not with_label:
        return scene
    if center is None:
        center = (width / 2.0, height / 2.0)

    cv2.fillPoly(scene, [label_corners(center, label_size, angle)], LABEL_RED)
    if border > 0:
        inner = (label_size[0] - 2 * border, label_size[1] - 2 * border)
        cv2.fillPoly(scene, [label_corners(center, inner, angle)], PANEL_WHITE)
        # three text lines across the panel
        rotation = cv2.getRotationMatrix2D(center, -angle, 1.0)
        for row in range(3):
            y = -inner[1] / 2 + inner[1] * (row + 1) / 4
            x0, x1 = -inner[0] / 2 + border, inner[0] / 2 - border
            pts = np.array([[center[0] + x0, center[1] + y], [center[0] + x1, center[1] + y]])
            pts = cv2.transform(pts.reshape(1, -1, 2), rotation).reshape(-1, 2)
            start = (int(round(pts[0][0])), int(round(pts[0][1])))
            end = (int(round(pts[1][0])), int(round(pts[1][1])))
            cv2.line(scene, start, end, TEXT_BLACK, 3)
    return scene


def main():
    output_root = Path(__file__).resolve().parent
    scenarios = {
        "no_label": {
            "description": "Plain backdrop, nothing red in frame.",
            "shots": [{"with_label": False}],
            "prefix": "empty",
        },
        "straight": {
            "description": "Single label, level with the frame.",
            "shots": [{"angle": 0.0}, {"angle": 0.0, "border": 10}],
            "prefix": "labelA",
        },
        "rotated": {
            "description": "Single label tilted either way.",
            "shots": [{"angle": 12.0}, {"angle": -20.0}, {"angle": 30.0, "border": 10}],
            "prefix": "labelB",
        },
    }

    for folder, config in scenarios.items():
        scenario_dir = output_root / "jpg" / folder
        scenario_dir.mkdir(parents=True, exist_ok=True)
        for index, shot in enumerate(config["shots"], start=1):
            filename = f"{config['prefix']}_shot{index:02d}.jpg"
            cv2.imwrite(str(scenario_dir / filename), render_label_scene(**shot))

    notes_path = output_root / "README.md"
    if not notes_path.exists():
        notes_path.write_text(
            "# QA image assets\n\n"
            "Synthetic label photographs are generated for deterministic pipeline testing.\n"
            "Scenes vary the label rotation and whether a label is present at all.\n"
            "Run `python generate_test_images.py` to recreate the assets.\n"
        )


if __name__ == "__main__":
    main()
