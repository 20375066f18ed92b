from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class BuildError(Exception):
    """Base error envelope. Every construction-time failure carries a code and a location."""

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None
    template: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<build>"
        if self.template:
            return f"{loc}: {self.code}: [{self.template}] {self.message}"
        return f"{loc}: {self.code}: {self.message}"


class BuildLoadError(BuildError):
    pass


class BuildValidationError(BuildError):
    pass


class ExpressionSyntaxError(BuildError):
    pass


class UnknownColumnError(BuildError):
    pass


class NamingCollisionError(BuildError):
    pass


class LengthMismatchError(BuildError):
    pass


class EmptyGroupError(BuildError):
    pass


class NameConflictError(BuildError):
    pass


class UnknownTargetError(BuildError):
    pass
