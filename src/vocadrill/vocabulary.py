import glob
import logging
import os
from typing import Any, Dict, List, Optional

import pandas as pd

from .config import settings
from .models import PracticeItem

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("word", "translation")
TRANSLATION_PREFIX = "translation_"
DUMMY_UNIT = "default_dummy"
DUMMY_WORDS = [
    {"word": "dog", "translation": "собака", "category": "animals"},
    {"word": "cat", "translation": "кошка", "category": "animals"},
    {"word": "tree", "translation": "дерево", "category": "nature"},
    {"word": "house", "translation": "дом", "category": "home"},
    {"word": "water", "translation": "вода", "category": "nature"},
]


def _optional(row: Dict[str, Any], column: str) -> Optional[str]:
    value = str(row.get(column, "") or "").strip()
    return value or None


def row_to_item(unit_id: str, index: int, row: Dict[str, Any]) -> PracticeItem:
    """Builds a PracticeItem from one CSV record."""
    translations = {settings.DEFAULT_LANGUAGE: str(row["translation"]).strip()}
    for column, value in row.items():
        if column.startswith(TRANSLATION_PREFIX) and str(value or "").strip():
            translations[column[len(TRANSLATION_PREFIX):]] = str(value).strip()

    return PracticeItem(
        id=_optional(row, "id") or f"{unit_id}:{index}",
        word=str(row["word"]).strip(),
        definition=_optional(row, "definition") or "",
        translations=translations,
        category=_optional(row, "category") or "",
        audio_url=_optional(row, "audio_url"),
        image_url=_optional(row, "image_url"),
        example=_optional(row, "example"),
    )


# --- Service Layer: Vocabulary Management ---
class VocabularyManager:
    """Read-only item catalog: one CSV file per unit."""

    def __init__(self, directory: str):
        self.directory = directory
        self.units: Dict[str, List[PracticeItem]] = {}

    def load_all(self):
        self.units = {}
        if not os.path.exists(self.directory):
            os.makedirs(self.directory)
            logger.warning(f"Created directory {self.directory}. Please add CSV files.")

        csv_files = glob.glob(os.path.join(self.directory, "*.csv"))
        for file_path in sorted(csv_files):
            unit_id = os.path.splitext(os.path.basename(file_path))[0]
            try:
                df = pd.read_csv(
                    file_path, encoding="utf-8", dtype=str, keep_default_na=False
                )
            except (OSError, ValueError) as e:
                logger.error(f"Failed to load {file_path}: {e}")
                continue

            if not all(column in df.columns for column in REQUIRED_COLUMNS):
                logger.error(f"Skipping {unit_id}: Missing columns.")
                continue

            records = [
                r for r in df.to_dict("records") if str(r["word"]).strip()
            ]
            self.units[unit_id] = [
                row_to_item(unit_id, i, row) for i, row in enumerate(records)
            ]
            logger.info(f"Loaded {len(records)} words from {unit_id}")

        if not self.units:
            logger.warning("No CSV files found. Loading dummy data.")
            self.units[DUMMY_UNIT] = [
                row_to_item(DUMMY_UNIT, i, row) for i, row in enumerate(DUMMY_WORDS)
            ]

    def fetch_pool(self, unit_id: str) -> List[PracticeItem]:
        return list(self.units.get(unit_id, []))

    def get_item(self, unit_id: str, item_id: str) -> Optional[PracticeItem]:
        return next((i for i in self.units.get(unit_id, []) if i.id == item_id), None)

    def get_topics(self) -> List[Dict[str, Any]]:
        topics = []
        for key, items in self.units.items():
            display_name = key.replace("_", " ").title()
            topics.append({"id": key, "name": display_name, "count": len(items)})
        topics.sort(key=lambda x: x["name"])
        return topics
