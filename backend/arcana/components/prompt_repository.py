"""
File-backed prompt repository for the reading stages.

System prompts live on disk as prompts/components/<stage>.system.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional


class ComponentPromptRepository:
    def __init__(self, prompts_root: Optional[Path] = None):
        # Default: <repo_root>/prompts/components
        if prompts_root is None:
            repo_root = Path(__file__).resolve().parents[3]  # backend/arcana/components -> repo root
            prompts_root = repo_root / "prompts" / "components"
        self.prompts_root = Path(prompts_root)

    def get_system_prompt(self, component_name: str) -> str:
        return _read_prompt(self.prompts_root / f"{component_name}.system")


@lru_cache(maxsize=32)
def _read_prompt(path: Path) -> str:
    return path.read_text(encoding="utf-8").strip()
