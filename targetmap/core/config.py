from __future__ import annotations

import re
from dataclasses import dataclass, fields, replace
from typing import Any, Optional

from targetmap.core.errors import BuildValidationError


@dataclass(frozen=True)
class BuildOptions:
    # Joins a template name with its row suffix, and suffix parts with each other.
    delimiter: str = "_"
    # Length of the hex digest used when no name columns are selected.
    hash_length: int = 8
    # Reducer placeholder that combine replaces with the source targets.
    combine_placeholder: str = "_x"


DEFAULT_OPTIONS = BuildOptions()

_DELIMITER_RE = re.compile(r"^[A-Za-z0-9_]+$")


def load_options(raw: Any, *, file: Optional[str] = None, path: str = "options") -> BuildOptions:
    """Build options from the ``options:`` mapping of a build file.

    Missing keys keep their defaults. Unknown keys and bad values raise.
    """
    if raw is None:
        return DEFAULT_OPTIONS
    if not isinstance(raw, dict):
        raise BuildValidationError(
            code="E_OPTIONS_INVALID",
            message="options must be a mapping",
            file=file,
            path=path,
        )

    known = {f.name for f in fields(BuildOptions)}
    unknown = sorted(k for k in raw if k not in known)
    if unknown:
        raise BuildValidationError(
            code="E_OPTIONS_INVALID",
            message=f"unknown option(s): {', '.join(unknown)} (choose from: {', '.join(sorted(known))})",
            file=file,
            path=path,
        )

    opts = replace(DEFAULT_OPTIONS, **raw)
    validate_options(opts, file=file, path=path)
    return opts


def validate_options(opts: BuildOptions, *, file: Optional[str] = None, path: str = "options") -> None:
    if not isinstance(opts.delimiter, str) or not _DELIMITER_RE.match(opts.delimiter):
        raise BuildValidationError(
            code="E_OPTIONS_INVALID",
            message="delimiter must be a non-empty string of identifier characters",
            file=file,
            path=f"{path}.delimiter",
        )
    if isinstance(opts.hash_length, bool) or not isinstance(opts.hash_length, int) or not 4 <= opts.hash_length <= 32:
        raise BuildValidationError(
            code="E_OPTIONS_INVALID",
            message="hash_length must be an integer between 4 and 32",
            file=file,
            path=f"{path}.hash_length",
        )
    if not isinstance(opts.combine_placeholder, str) or not opts.combine_placeholder.isidentifier():
        raise BuildValidationError(
            code="E_OPTIONS_INVALID",
            message="combine_placeholder must be an identifier",
            file=file,
            path=f"{path}.combine_placeholder",
        )
