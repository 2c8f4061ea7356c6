"""Output surfaces (mount points) that hold the currently displayed scene."""
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol, Union

from .render import RenderedScene

logger = logging.getLogger(__name__)


class Surface(Protocol):
    def replace(self, scene: RenderedScene) -> None:
        """Unmount the current scene and mount ``scene`` in one step."""


class MemorySurface:
    """Keeps the mounted scene in memory.

    ``replace`` is a single attribute assignment: a reader sees either the old
    scene or the new one, never an empty surface or both.
    """

    def __init__(self) -> None:
        self.current: Optional[RenderedScene] = None
        self.generation = 0

    def replace(self, scene: RenderedScene) -> None:
        self.current = scene
        self.generation += 1


class FileSurface:
    """Mounts scenes as an SVG file, swapped in with an atomic rename."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self.current: Optional[RenderedScene] = None
        self.generation = 0

    def replace(self, scene: RenderedScene) -> None:
        svg_text = scene.to_svg()
        directory = self.path.parent
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(svg_text)
                if not svg_text.endswith("\n"):
                    fh.write("\n")
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
        self.current = scene
        self.generation += 1
        logger.debug("mounted generation %d at %s", self.generation, self.path)
