# File: schemagen/utils.py
"""
schemagen - Shared Helpers
==========================
Naming, literal rendering, import statements and file I/O used by the
validator, the synthesizers and the exporter.

Every case conversion goes through :func:`split_words`, so table names,
module names, route segments and enum members agree on word boundaries.
The converters are memoised: one generation run asks for the same names
over and over.
"""

from __future__ import annotations

import functools
import hashlib
import logging
import os
import re
import shutil
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Set, Tuple

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.utils")


# ---------------------------------------------------------------------------
# Word splitting
# ---------------------------------------------------------------------------

# Acronym before a capitalised word ("HTTPServer"), a capitalised or lower
# word with trailing digits, a trailing acronym, or a bare number.
_WORD_RE: re.Pattern[str] = re.compile(
    r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z0-9]+|[A-Z]+[0-9]*|[0-9]+"
)

_PYTHON_KEYWORDS: FrozenSet[str] = frozenset({
    "False", "None", "True", "and", "as", "assert", "async", "await",
    "break", "class", "continue", "def", "del", "elif", "else",
    "except", "finally", "for", "from", "global", "if", "import",
    "in", "is", "lambda", "nonlocal", "not", "or", "pass", "raise",
    "return", "try", "while", "with", "yield",
})

# Builtins plus names that SQLAlchemy declarative classes or Pydantic
# models already own
_RESERVED_ATTRIBUTES: FrozenSet[str] = frozenset({
    "id", "type", "list", "dict", "set", "str", "int", "float",
    "bool", "bytes", "object", "hash", "input", "print", "range",
    "len", "map", "filter", "zip", "format", "iter", "next", "open",
    "max", "min", "sum", "any", "all", "metadata", "registry",
    "json", "copy", "schema", "validate", "construct",
    "model_config", "model_fields",
})


@functools.lru_cache(maxsize=None)
def split_words(name: str) -> Tuple[str, ...]:
    """
    Lower-case words of *name*, whatever its casing style.

    Examples:
        >>> split_words("HTTPServer")
        ('http', 'server')
        >>> split_words("created_at")
        ('created', 'at')
    """
    return tuple(word.lower() for word in _WORD_RE.findall(name))


def to_snake_case(name: str) -> str:
    """``BlogPost`` -> ``blog_post``."""
    return "_".join(split_words(name))


def to_kebab_case(name: str) -> str:
    """``BlogPost`` -> ``blog-post`` (URL segments)."""
    return "-".join(split_words(name))


def to_title_human(name: str) -> str:
    """``BlogPost`` -> ``blog post`` (summaries and descriptions)."""
    return " ".join(split_words(name))


def lower_first(name: str) -> str:
    """``BlogPost`` -> ``blogPost``."""
    return name[:1].lower() + name[1:]


def upper_first(name: str) -> str:
    """``status`` -> ``Status``."""
    return name[:1].upper() + name[1:]


# ---------------------------------------------------------------------------
# Pluralisation
# ---------------------------------------------------------------------------

_IRREGULAR_PLURALS: Tuple[Tuple[str, str], ...] = (
    ("person", "people"),
    ("child", "children"),
    ("mouse", "mice"),
    ("datum", "data"),
    ("index", "indices"),
    ("status", "statuses"),
)

_SIBILANT_ENDINGS: Tuple[str, ...] = ("ss", "sh", "ch", "x", "z")


@functools.lru_cache(maxsize=None)
def to_plural(name: str) -> str:
    """
    English plural of the last word of *name*, keeping its casing.

    Good enough for table names and route segments; words already ending
    in a single ``s`` are left alone (``news``, ``series``).
    """
    lower: str = name.lower()
    for singular, plural in _IRREGULAR_PLURALS:
        if lower.endswith(singular):
            cut: int = len(name) - len(singular)
            if name[cut].isupper():
                plural = upper_first(plural)
            return name[:cut] + plural

    if lower.endswith(_SIBILANT_ENDINGS):
        return f"{name}es"
    if lower.endswith("s"):
        return name
    if len(lower) > 1 and lower.endswith("y") and lower[-2] not in "aeiou":
        return f"{name[:-1]}ies"
    return f"{name}s" if name else ""


@functools.lru_cache(maxsize=None)
def safe_identifier(name: str) -> str:
    """
    snake_case attribute name that is legal in every generated module.

    A leading digit gets an underscore prefix; keywords and reserved
    attribute names get an underscore suffix (``class`` -> ``class_``).
    """
    result: str = to_snake_case(name) or "_unnamed"
    if result[0].isdigit():
        return f"_{result}"
    if result in _PYTHON_KEYWORDS or result in _RESERVED_ATTRIBUTES:
        return f"{result}_"
    return result


# ---------------------------------------------------------------------------
# Names of generated artefacts
# ---------------------------------------------------------------------------


def table_name(entity_name: str) -> str:
    """``BlogPost`` -> ``blog_posts``."""
    return to_snake_case(to_plural(entity_name))


def module_name(entity_name: str) -> str:
    """Python module name of an entity's schema, service and router files."""
    return safe_identifier(entity_name)


def route_tag(entity_name: str) -> str:
    """``BlogPost`` -> ``blog-posts`` (URL segment and OpenAPI tag)."""
    return to_kebab_case(to_plural(entity_name))


# ---------------------------------------------------------------------------
# Literal rendering
# ---------------------------------------------------------------------------

_STRING_ESCAPES: Dict[str, str] = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def wrap_in_quotes(value: str) -> str:
    """Double-quoted Python string literal of *value*."""
    return '"' + "".join(_STRING_ESCAPES.get(ch, ch) for ch in value) + '"'


def py_literal(value: Any) -> str:
    """
    Render a JSON-compatible value as Python source.

    Examples:
        >>> py_literal({"a": [1, True, None]})
        '{"a": [1, True, None]}'
    """
    if value is None or isinstance(value, (bool, int, float)):
        return repr(value)
    if isinstance(value, str):
        return wrap_in_quotes(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(py_literal(item) for item in value) + "]"
    if isinstance(value, dict):
        items: List[str] = [
            f"{wrap_in_quotes(str(key))}: {py_literal(item)}" for key, item in value.items()
        ]
        return "{" + ", ".join(items) + "}"
    raise TypeError(f"Cannot render {type(value).__name__} as a Python literal.")


def docstring_text(text: Optional[str]) -> str:
    """Collapse *text* to one line that is safe inside a triple-quoted docstring."""
    if not text:
        return ""
    single: str = " ".join(text.split())
    return single.replace("\\", "\\\\").replace('"""', '\\"\\"\\"')


# ---------------------------------------------------------------------------
# Import statements
# ---------------------------------------------------------------------------


def import_statements(imports: Dict[str, Set[str]]) -> List[str]:
    """
    One sorted statement per module; an empty name set means ``import module``.

    Example:
        >>> import_statements({"typing": {"List", "Optional"}, "uvicorn": set()})
        ['from typing import List, Optional', 'import uvicorn']
    """
    statements: List[str] = []
    for module in sorted(imports):
        names: Set[str] = imports[module]
        if names:
            statements.append(f"from {module} import {', '.join(sorted(names))}")
        else:
            statements.append(f"import {module}")
    return statements


def merge_import_dicts(*dicts: Dict[str, Set[str]]) -> Dict[str, Set[str]]:
    """Union of several ``{module: names}`` mappings; the inputs are not modified."""
    merged: Dict[str, Set[str]] = {}
    for mapping in dicts:
        for module, names in mapping.items():
            merged.setdefault(module, set()).update(names)
    return merged


# ---------------------------------------------------------------------------
# File I/O
# ---------------------------------------------------------------------------


def write_file(path: Path, content: str, atomic: bool = True) -> int:
    """
    Write *content* as UTF-8 and return the byte count.

    With *atomic*, the bytes go to a sibling temp file that then replaces
    *path*, so readers never see a partial file.
    """
    data: bytes = content.encode("utf-8")
    path.parent.mkdir(parents=True, exist_ok=True)

    if not atomic:
        path.write_bytes(data)
    else:
        with tempfile.NamedTemporaryFile(
            "wb", dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
        ) as handle:
            handle.write(data)
            tmp_name: str = handle.name
        try:
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    logger.debug("Wrote %d bytes to %s", len(data), path)
    return len(data)


def clean_directory(path: Path, keep_git: bool = True) -> None:
    """Empty *path* but keep the directory itself (and ``.git`` when asked)."""
    if not path.is_dir():
        return
    removed: int = 0
    for entry in path.iterdir():
        if keep_git and entry.name == ".git":
            continue
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()
        removed += 1
    logger.debug("Cleaned %s: %d entries removed.", path, removed)


def sha256_hex(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def count_lines(content: str) -> int:
    """Lines in *content*; a trailing newline does not start a new line."""
    return len(content.splitlines())


# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------


class Timer:
    """
    Context manager recording the wall time of one pipeline step.

    Usage::

        with Timer("assemble") as timer:
            ...
        report.elapsed_seconds = timer.elapsed
    """

    __slots__ = ("label", "_started", "elapsed")

    def __init__(self, label: str) -> None:
        self.label: str = label
        self._started: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> "Timer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.elapsed = time.perf_counter() - self._started
        logger.debug("Step %s took %.4fs.", self.label, self.elapsed)

    def __repr__(self) -> str:
        return f"<Timer {self.label}: {self.elapsed:.4f}s>"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "split_words",
    "to_snake_case",
    "to_kebab_case",
    "to_title_human",
    "lower_first",
    "upper_first",
    "to_plural",
    "safe_identifier",
    "table_name",
    "module_name",
    "route_tag",
    "wrap_in_quotes",
    "py_literal",
    "docstring_text",
    "import_statements",
    "merge_import_dicts",
    "write_file",
    "clean_directory",
    "sha256_hex",
    "count_lines",
    "Timer",
]

logger.debug("schemagen.utils loaded: %d public symbols.", len(__all__))
