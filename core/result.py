"""Tagged success/failure values for parsing that must not raise."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from core.errors import ParseError


@dataclass(frozen=True)
class Ok:
    value: Any
    ok: bool = True


@dataclass(frozen=True)
class Err:
    error: ParseError
    ok: bool = False
