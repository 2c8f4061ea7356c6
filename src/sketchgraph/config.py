"""Render configuration shared by the pipeline, scheduler and CLI."""
from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Mapping, Optional

ENV_PREFIX = "SKETCHGRAPH_"

DEFAULT_SKETCHINESS = 0.5
DEFAULT_DELAY = 0.5
DEFAULT_PADDING = 10.0
DEFAULT_MARGIN = 10.0
DEFAULT_FONT_FAMILY = "xkcd-script"
DEFAULT_FONT_SIZE = 16.0

LAYOUT_ENGINES = ("auto", "builtin", "graphviz")


@dataclass(frozen=True)
class RenderConfig:
    sketchiness: float = DEFAULT_SKETCHINESS
    seed: Optional[int] = 0
    delay: float = DEFAULT_DELAY
    padding: float = DEFAULT_PADDING
    margin: float = DEFAULT_MARGIN
    font_family: str = DEFAULT_FONT_FAMILY
    font_path: Optional[str] = None
    font_size: float = DEFAULT_FONT_SIZE
    engine: str = "auto"

    def __post_init__(self) -> None:
        if self.sketchiness < 0:
            raise ValueError(f"sketchiness must be >= 0 (got {self.sketchiness})")
        if self.delay < 0:
            raise ValueError(f"delay must be >= 0 (got {self.delay})")
        if self.padding < 0 or self.margin < 0:
            raise ValueError("padding and margin must be >= 0")
        if self.font_size <= 0:
            raise ValueError(f"font_size must be > 0 (got {self.font_size})")
        if self.engine not in LAYOUT_ENGINES:
            raise ValueError(
                f'engine must be one of {", ".join(LAYOUT_ENGINES)} (got "{self.engine}")'
            )

    def with_overrides(self, **overrides: object) -> "RenderConfig":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RenderConfig":
        env = os.environ if environ is None else environ
        values: dict = {}
        for field in fields(cls):
            raw = env.get(ENV_PREFIX + field.name.upper())
            if raw is None or raw == "":
                continue
            values[field.name] = _coerce(field.name, raw)
        return cls(**values)


def _coerce(name: str, raw: str) -> object:
    if name in {"sketchiness", "delay", "padding", "margin", "font_size"}:
        try:
            return float(raw)
        except ValueError as exc:
            raise ValueError(f"{ENV_PREFIX}{name.upper()} must be a number (got {raw!r})") from exc
    if name == "seed":
        if raw.strip().lower() in {"none", "random"}:
            return None
        try:
            return int(raw)
        except ValueError as exc:
            raise ValueError(f"{ENV_PREFIX}SEED must be an integer or 'none' (got {raw!r})") from exc
    return raw
