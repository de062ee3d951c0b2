from __future__ import annotations

from pathlib import Path
from typing import Dict, Mapping, Optional

from agentloop.errors import PromptNotFoundError


class PromptStore:
    """Named prompt lookup: ``<directory>/<name>.md`` first, then ``defaults``."""

    def __init__(
        self,
        directory: Path | str | None = None,
        defaults: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.directory = Path(directory) if directory is not None else None
        self._defaults: Dict[str, str] = dict(defaults or {})
        self._loaded: Dict[str, str] = {}

    def register(self, name: str, text: str) -> None:
        self._defaults[name] = text

    def get_prompt(self, name: str) -> str:
        if name in self._loaded:
            return self._loaded[name]
        if self.directory is not None:
            path = self.directory / f"{name}.md"
            if path.is_file():
                self._loaded[name] = path.read_text(encoding="utf-8").strip()
                return self._loaded[name]
        if name in self._defaults:
            return self._defaults[name]
        raise PromptNotFoundError(name)
