from dataclasses import asdict, dataclass, field

import cv2
import pytesseract
from pytesseract import Output
from PIL import Image

from label_config import DEBUG, OCR_CONFIG

# --- Configuration ---
# Words closer than this multiple of the measured word gap belong to one group.
GROUP_GAP_FACTOR = 2

# Tesseract image_to_data levels
PAGE_LEVEL = 1
LINE_LEVEL = 4
WORD_LEVEL = 5


@dataclass(frozen=True)
class OcrWord:
    text: str
    x1: int
    y1: int
    x2: int
    y2: int


@dataclass
class OcrLine:
    key: tuple
    words: list = field(default_factory=list)

    @property
    def text(self):
        return " ".join(word.text for word in self.words)


@dataclass(frozen=True)
class WordGroup:
    words: tuple
    x1: int
    x2: int

    @classmethod
    def from_words(cls, words):
        return cls(tuple(word.text for word in words), words[0].x1, words[-1].x2)

    @property
    def text(self):
        return " ".join(self.words)


@dataclass
class LabelFields:
    game: str = ""
    number_in_set: str = ""
    card_name: str = ""
    grade: str = ""
    subset: str = ""
    serial: str = ""

    def to_dict(self):
        return asdict(self)

    def is_empty(self):
        return not any(self.to_dict().values())


class OcrPage:
    """Walks Tesseract's block/paragraph/line/word output one text line at a time.

    `data` is the dict returned by ``pytesseract.image_to_data(...,
    output_type=Output.DICT)``. Iterating the page always starts from the
    first line, so the same page can be walked once to measure word spacing
    and again to group words.
    """

    def __init__(self, data, image_width=0):
        self._data = data
        self.width = image_width
        for idx, level in enumerate(data.get("level", [])):
            if level == PAGE_LEVEL:
                self.width = int(data["width"][idx])
                break

    def __iter__(self):
        data = self._data
        current = None
        for idx, level in enumerate(data.get("level", [])):
            if level == LINE_LEVEL:
                if current is not None:
                    yield current
                key = (data["block_num"][idx], data["par_num"][idx], data["line_num"][idx])
                current = OcrLine(key)
            elif level == WORD_LEVEL and current is not None:
                text = str(data["text"][idx]).strip()
                if not text:
                    continue
                left, top = int(data["left"][idx]), int(data["top"][idx])
                current.words.append(OcrWord(
                    text,
                    left,
                    top,
                    left + int(data["width"][idx]),
                    top + int(data["height"][idx]),
                ))
        if current is not None:
            yield current

    @property
    def text(self):
        return "\n".join(line.text for line in self)


def estimate_word_distance(lines):
    """Returns the gap between the first two words of the first multi-word line, or None."""
    for line in lines:
        if not line.text.strip() or len(line.words) < 2:
            continue
        first, second = line.words[0], line.words[1]
        return second.x1 - first.x2
    return None


def group_line_words(words, word_distance):
    """Splits a line's words into groups wherever the gap reaches twice the word distance."""
    groups = []
    current = []
    for word in words:
        if current and word.x1 - current[-1].x2 >= GROUP_GAP_FACTOR * word_distance:
            groups.append(WordGroup.from_words(current))
            current = []
        current.append(word)
    if current:
        groups.append(WordGroup.from_words(current))
    return groups


def group_page_lines(lines, word_distance):
    """Groups every non-empty line; single-word lines before the first kept line are dropped."""
    grouped = []
    for line in lines:
        if not line.text.strip():
            continue
        if not grouped and len(line.words) <= 1:
            continue
        grouped.append(group_line_words(line.words, word_distance))
    return grouped


def extract_label_fields(lines, page_width):
    """Maps grouped label lines onto the six label fields by position."""
    fields = LabelFields()

    if len(lines) >= 1 and len(lines[0]) >= 1:
        fields.game = lines[0][0].text
    if len(lines) >= 1 and len(lines[0]) >= 2:
        fields.number_in_set = lines[0][-1].text

    if len(lines) >= 2 and len(lines[1]) >= 1:
        fields.card_name = lines[1][0].text
    if len(lines) >= 2 and len(lines[1]) >= 2:
        fields.grade = lines[1][-1].text

    # Subset is optional; when printed it always starts in the left half.
    if len(lines) >= 3 and len(lines[2]) >= 1 and lines[2][0].x1 <= page_width / 2:
        fields.subset = lines[2][0].text

    if len(lines) >= 4 and len(lines[3]) >= 2:
        fields.serial = lines[3][-1].text

    return fields


def read_label_fields(page):
    """Clusters an OCR page into word groups and extracts the label fields.

    Returns None when no line has two words to measure spacing from, or
    when the first two words overlap.
    """
    word_distance = estimate_word_distance(page)
    if DEBUG:
        print(f"[DEBUG] Word distance: {word_distance}")
    if word_distance is None or word_distance < 0:
        return None
    lines = group_page_lines(page, word_distance)
    return extract_label_fields(lines, page.width)


def ocr_label(label_image, config=OCR_CONFIG):
    """Runs Tesseract on a rectified BGR label crop and returns its LabelFields (or None)."""
    rgb = cv2.cvtColor(label_image, cv2.COLOR_BGR2RGB)
    try:
        data = pytesseract.image_to_data(Image.fromarray(rgb), config=config, output_type=Output.DICT)
    except pytesseract.TesseractError as exc:
        print(f"Warning: Tesseract failed on label crop ({exc}).")
        return None

    page = OcrPage(data, image_width=label_image.shape[1])
    if DEBUG:
        print(f"[DEBUG] OCR text:\n{page.text}")
    return read_label_fields(page)
