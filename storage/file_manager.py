# storage/file_manager.py
"""Utility class for asynchronous manuscript export."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Iterable

from config import MANUSCRIPTS_DIR, TRANSLATIONS_DIR
from models.job_models import TranslatedUnit
from models.unit_models import Unit, sort_units, unit_label, unit_sort_key


def _safe_name(value: str) -> str:
    return "".join(c if c.isalnum() or c in ["_", "-"] else "_" for c in value) or "untitled"


def assemble_manuscript(title: str, sections: Iterable[tuple[int, str, str]]) -> str:
    """Join ``(number, title, text)`` sections in canonical order as Markdown."""
    parts = [f"# {title}"]
    for number, section_title, text in sorted(sections, key=lambda s: unit_sort_key(s[0])):
        heading = unit_label(number)
        if section_title:
            heading = f"{heading}: {section_title}"
        parts.append(f"## {heading}\n\n{text.strip()}")
    return "\n\n".join(parts) + "\n"


class FileManager:
    """Write finished manuscripts and translations to disk."""

    def __init__(
        self,
        manuscripts_dir: str = MANUSCRIPTS_DIR,
        translations_dir: str = TRANSLATIONS_DIR,
    ) -> None:
        self.manuscripts_dir = manuscripts_dir
        self.translations_dir = translations_dir
        os.makedirs(self.manuscripts_dir, exist_ok=True)
        os.makedirs(self.translations_dir, exist_ok=True)

    async def save_manuscript(self, project_id: str, title: str, units: Iterable[Unit]) -> str:
        text = assemble_manuscript(
            title, ((u.number, u.title, u.content) for u in sort_units(units))
        )
        path = os.path.join(self.manuscripts_dir, f"{_safe_name(project_id)}.md")
        await self._write(path, text)
        return path

    async def save_translation(
        self, job_id: str, title: str, target_language: str, units: Iterable[TranslatedUnit]
    ) -> str:
        text = assemble_manuscript(title, ((u.unit_number, u.title, u.text) for u in units))
        path = os.path.join(
            self.translations_dir, f"{_safe_name(job_id)}.{_safe_name(target_language)}.md"
        )
        await self._write(path, text)
        return path

    async def _write(self, path: str, text: str) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write_sync, path, text)

    def _write_sync(self, path: str, text: str) -> None:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
