"""Label measurement using Pillow font metrics on a scratch drawing surface."""
from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from PIL import Image, ImageDraw, ImageFont

from .config import DEFAULT_FONT_FAMILY, DEFAULT_FONT_SIZE, DEFAULT_PADDING
from .errors import MeasurementError
from .model import GraphModel, Node

logger = logging.getLogger(__name__)

FONT_FALLBACKS = {
    "xkcd-script": ["xkcd-script", "xkcd Script", "Humor Sans", "Comic Neue", "Comic Sans MS"],
    "sans-serif": ["Helvetica", "Arial", "Liberation Sans", "DejaVu Sans"],
    "serif": ["Times New Roman", "Times", "Liberation Serif", "DejaVu Serif"],
    "monospace": ["Courier New", "Courier", "Liberation Mono", "DejaVu Sans Mono"],
}

LINE_SPACING = 4.0

AnyFont = Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]


class LabelMeasurer:
    """Sizes node shapes from the rendered footprint of their labels.

    Fonts are resolved once per measurer and cached. Every measurement draws
    on a scratch Pillow surface that only exists for the duration of the call.
    """

    FONT_DIRS = [
        Path("/System/Library/Fonts"),
        Path("/System/Library/Fonts/Supplemental"),
        Path("/Library/Fonts"),
        Path("~/Library/Fonts").expanduser(),
        Path("~/.fonts").expanduser(),
        Path("~/.local/share/fonts").expanduser(),
        Path("/usr/share/fonts"),
        Path("/usr/local/share/fonts"),
        Path("C:/Windows/Fonts"),
    ]

    def __init__(
        self,
        *,
        font_family: str = DEFAULT_FONT_FAMILY,
        font_size: float = DEFAULT_FONT_SIZE,
        font_path: Optional[str] = None,
        padding: float = DEFAULT_PADDING,
    ) -> None:
        self.font_family = font_family
        self.font_size = font_size
        self.font_path = str(Path(font_path).expanduser()) if font_path else None
        self.padding = padding
        self._font = None
        self._font_paths: Dict[str, Optional[str]] = {}

    @property
    def font(self) -> AnyFont:
        if self._font is None:
            self._font = self._load_font()
        return self._font

    def _load_font(self) -> AnyFont:
        size = max(1, int(round(self.font_size)))
        candidates: List[str] = []
        if self.font_path:
            candidates.append(self.font_path)
        for family in FONT_FALLBACKS.get(self.font_family.lower(), [self.font_family]):
            resolved = self._locate_font(family)
            if resolved:
                candidates.append(resolved)
        candidates.append("DejaVuSans.ttf")

        for candidate in candidates:
            path, index = _parse_font_candidate(candidate)
            try:
                font = ImageFont.truetype(path, size, index=index)
            except OSError:
                continue
            logger.debug("using font %s for family %r", candidate, self.font_family)
            return font
        logger.debug("no font file found for %r; using Pillow default font", self.font_family)
        try:
            return ImageFont.load_default(size=size)
        except OSError as exc:
            raise MeasurementError(f'no usable font for family "{self.font_family}"') from exc

    def _locate_font(self, family: str) -> Optional[str]:
        key = family.lower()
        if key in self._font_paths:
            return self._font_paths[key]
        normalized = re.sub(r"[^a-z0-9]+", "", family, flags=re.IGNORECASE).lower()
        if not normalized:
            self._font_paths[key] = None
            return None
        aliases = {normalized, normalized + "regular", normalized + "mt", normalized + "psmt"}
        best_match: Optional[Tuple[int, str]] = None
        for directory in self.FONT_DIRS:
            if not directory.is_dir():
                continue
            for pattern in ("*.ttf", "*.otf", "*.ttc"):
                try:
                    paths = sorted(directory.rglob(pattern))
                except OSError:
                    continue
                for path in paths:
                    stem = re.sub(r"[^a-z0-9]+", "", path.stem, flags=re.IGNORECASE).lower()
                    if stem in aliases:
                        score = 0
                    elif stem.startswith(normalized):
                        score = 1
                    else:
                        continue
                    candidate = f"{path};0" if pattern == "*.ttc" else str(path)
                    if best_match is None or score < best_match[0]:
                        best_match = (score, candidate)
        resolved = best_match[1] if best_match else None
        self._font_paths[key] = resolved
        return resolved

    @contextmanager
    def scratch_surface(self) -> Iterator[ImageDraw.ImageDraw]:
        """Yield a throwaway drawing surface; it is released on every exit path."""
        try:
            image = Image.new("L", (1, 1))
        except (OSError, ValueError, MemoryError) as exc:
            raise MeasurementError(f"scratch drawing surface unavailable: {exc}") from exc
        try:
            yield ImageDraw.Draw(image)
        finally:
            image.close()

    def measure_text(self, text: str, surface: Optional[ImageDraw.ImageDraw] = None) -> Tuple[float, float]:
        """Return the unpadded ``(width, height)`` footprint of ``text``."""
        if surface is None:
            with self.scratch_surface() as scratch:
                return self.measure_text(text, scratch)
        font = self.font
        try:
            if "\n" in text:
                left, top, right, bottom = surface.multiline_textbbox(
                    (0, 0), text, font=font, spacing=LINE_SPACING
                )
            else:
                left, top, right, bottom = surface.textbbox((0, 0), text, font=font)
        except (OSError, ValueError, TypeError) as exc:
            raise MeasurementError(f"failed to measure label {text!r}: {exc}") from exc
        line_count = text.count("\n") + 1
        line_box = self._line_height() * line_count + LINE_SPACING * (line_count - 1)
        width = float(right - min(left, 0))
        height = float(max(bottom, line_box) - min(top, 0))
        return width, height

    def _line_height(self) -> float:
        metrics = getattr(self.font, "getmetrics", None)
        if metrics is None:
            return float(self.font_size)
        ascent, descent = metrics()
        return float(ascent + descent)

    def measure(self, node: Node, surface: Optional[ImageDraw.ImageDraw] = None) -> Tuple[float, float]:
        """Return the padded ``(width, height)`` a node shape needs for its label."""
        text_width, text_height = self.measure_text(node.label, surface)
        return text_width + 2 * self.padding, text_height + 2 * self.padding

    def measure_graph(self, graph: GraphModel) -> GraphModel:
        """Write measured sizes onto every node of ``graph``."""
        with self.scratch_surface() as surface:
            for node in graph:
                node.width, node.height = self.measure(node, surface)
        return graph


def _parse_font_candidate(candidate: str) -> Tuple[str, int]:
    if ";" in candidate:
        path, idx = candidate.rsplit(";", 1)
        try:
            return path, int(idx)
        except ValueError:
            return path, 0
    return candidate, 0
