from __future__ import annotations

import re
from typing import Dict, Iterable, Mapping, Optional

# Road Damage Dataset (RDD) classes in export order.
DEFAULT_CLASS_NAMES: Dict[int, str] = {
    0: "longitudinal_crack",
    1: "transverse_crack",
    2: "alligator_crack",
    3: "pothole",
}

_INDEXED = re.compile(r"^\s+(\d+)\s*:\s*(.+?)\s*$")
_LISTED = re.compile(r"^\s*-\s*(.+?)\s*$")
_NAMES_KEY = re.compile(r"^names\s*:")
_INLINE = re.compile(r"^names\s*:\s*\[(.*)\]\s*$")


def _unquote(value: str) -> str:
    return value.strip().strip("'\"")


def _names_block(lines: Iterable[str]) -> Iterable[str]:
    inside = False
    for line in lines:
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        top_level = not line[:1].isspace() and not line.startswith("-")
        if top_level and inside:
            return
        if top_level and _NAMES_KEY.match(line):
            inside = True
        if inside:
            yield line


def parse_class_names(text: str) -> Dict[int, str]:
    """
    Read the class list from an Ultralytics-style `metadata.yaml`.

    Three spellings of `names` are understood:

        names:                names:             names: [a, b]
          0: a                  - a
          1: b                  - b

    Everything outside the `names` block is ignored.
    """

    block = list(_names_block(text.splitlines()))
    if not block:
        return {}

    inline = _INLINE.match(block[0])
    if inline:
        items = [_unquote(v) for v in inline.group(1).split(",") if v.strip()]
        return dict(enumerate(items))

    names: Dict[int, str] = {}
    listed = 0
    for line in block[1:]:
        m = _INDEXED.match(line)
        if m:
            names[int(m.group(1))] = _unquote(m.group(2))
            continue
        m = _LISTED.match(line)
        if m:
            names[listed] = _unquote(m.group(1))
            listed += 1
    return names


def load_class_names(metadata_path: str, fallback: Optional[Mapping[int, str]] = None) -> Dict[int, str]:
    """
    Class names from a metadata file next to the model.

    When the file has no usable `names` block, `fallback` is returned (if given).
    """

    with open(metadata_path, "r", encoding="utf-8") as f:
        names = parse_class_names(f.read())
    if not names and fallback is not None:
        return dict(fallback)
    return names


def class_label(class_id: int, class_names: Optional[Mapping[int, str]] = None) -> str:
    if class_names and class_id in class_names:
        return class_names[class_id]
    return DEFAULT_CLASS_NAMES.get(class_id, str(class_id))
