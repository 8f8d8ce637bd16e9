"""Console colors for nixctl.

Defaults can be overridden per user with a ``[colors]`` table in
``~/.config/nixctl/theme.toml``.
"""

import logging
import re
import tomllib
from functools import cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from rich.theme import Theme

from nixctl.core.paths import get_config_dir

logger = logging.getLogger(__name__)

HEX_COLOR = re.compile(r"#(?:[0-9a-fA-F]{3}){1,2}")


class ThemeColors(BaseModel):
    """Colors for messages, plan tables and error trees."""

    model_config = ConfigDict(extra="forbid")

    muted: str = "#b2bec3"
    heading: str = "#7eb2dd"
    border: str = "#415e9a"
    success: str = "#03b971"
    warning: str = "#f5b332"
    error: str = "#f53263"
    info: str = "#0ec1c8"
    execute: str = "#c1ff62"
    revert: str = "#f5b332"
    tag: str = "#7eb2dd"

    @field_validator("*")
    @classmethod
    def check_hex(cls, value: str) -> str:
        color = value.strip()
        if not HEX_COLOR.fullmatch(color):
            raise ValueError(f"expected #RGB or #RRGGBB, got {value!r}")
        return color

    def to_rich(self) -> Theme:
        """Build the Rich theme; errors, tags and headings are bold."""
        styles = self.model_dump()
        for name in ("error", "tag", "heading"):
            styles[name] = f"bold {styles[name]}"
        return Theme(styles)


def get_user_theme_path() -> Path:
    return get_config_dir() / "theme.toml"


def load_theme(path: Path | None = None) -> ThemeColors:
    """Load colors, applying the user's overrides.

    A missing file gives the defaults. An unreadable or invalid file is
    logged and ignored.
    """
    theme_path = path or get_user_theme_path()
    try:
        with open(theme_path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        return ThemeColors()
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("Ignoring theme file %s: %s", theme_path, e)
        return ThemeColors()

    try:
        return ThemeColors.model_validate(data.get("colors", {}))
    except ValidationError as e:
        logger.warning("Ignoring invalid colors in %s: %s", theme_path, e)
        return ThemeColors()


@cache
def get_theme() -> Theme:
    """Rich theme built from the user's colors, loaded once."""
    return load_theme().to_rich()
