"""Application configuration defaults."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

THEMES = ("dark", "light")
ONE_GIB = 1 << 30


def _get_default_index_path() -> Path:
    """Index file lives next to the user's other dotfiles."""
    return Path.home() / ".mdserve.index"


@dataclass(slots=True)
class AppConfig:
    root_dir: Path = Path(".")
    host: str = "localhost"
    port: int = 8080
    theme: str = "dark"
    index_path: Path | None = None
    rebuild_interval: float = 3600.0
    max_file_size: int = ONE_GIB
    suffix: str = ".md"

    def __post_init__(self) -> None:
        self.root_dir = Path(self.root_dir)
        if self.index_path is None:
            self.index_path = _get_default_index_path()
        if self.theme not in THEMES:
            raise ValueError(f"Unknown theme {self.theme!r}; expected one of {', '.join(THEMES)}")
        if self.rebuild_interval <= 0:
            raise ValueError("rebuild_interval must be positive")
        if self.max_file_size < 0:
            raise ValueError("max_file_size must not be negative")
        if not self.suffix.startswith(".") or len(self.suffix) < 2:
            raise ValueError(f"Invalid document suffix: {self.suffix!r}")

    @property
    def addr(self) -> str:
        return f"{self.host}:{self.port}"

    def resolve_index_path(self, base_dir: Path | None = None) -> Path:
        if self.index_path is None:
            self.index_path = _get_default_index_path()
        path = Path(self.index_path).expanduser()
        if path.is_absolute() or base_dir is None:
            return path
        return base_dir / path
