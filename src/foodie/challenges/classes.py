"""Food classes recognized by the image classifier, indexed by model class id."""

from __future__ import annotations

import random

FOOD_CLASSES: dict[int, str] = {
    0: "Banh beo",
    1: "Banh bot loc",
    2: "Banh can",
    3: "Banh canh",
    4: "Banh chung",
    5: "Banh cuon",
    6: "Banh duc",
    7: "Banh gio",
    8: "Banh khot",
    9: "Banh mi",
    10: "Banh pia",
    11: "Banh tet",
    12: "Banh trang nuong",
    13: "Banh xeo",
    14: "Bun bo Hue",
    15: "Bun dau mam tom",
    16: "Bun mam",
    17: "Bun rieu",
    18: "Bun thit nuong",
    19: "Ca kho to",
    20: "Canh chua",
    21: "Cao lau",
    22: "Chao long",
    23: "Com tam",
    24: "Goi cuon",
    25: "Hu tieu",
    26: "Mi quang",
    27: "Nem chua",
    28: "Pho",
    29: "Xoi xeo",
}

UNKNOWN_CLASS = "Unknown"


def class_name(class_id: int) -> str:
    return FOOD_CLASSES.get(class_id, UNKNOWN_CLASS)


def random_class(rng: random.Random | None = None) -> tuple[int, str]:
    """Pick a class uniformly at random. Returns ``(class_id, name)``."""
    class_id = (rng or random).choice(list(FOOD_CLASSES))
    return class_id, FOOD_CLASSES[class_id]
