"""Path classification helpers shared by the schemas and the scorer.

Everything here is a pure function of a project-relative path string; no
file is ever opened or stat'ed.
"""

from __future__ import annotations

import posixpath

from contextor.schemas.kinds import FileKind

# File extension → language mapping
_EXT_LANG: dict[str, str] = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".kt": "kotlin",
    ".rb": "ruby",
    ".php": "php",
    ".c": "c",
    ".h": "c",
    ".cc": "c++",
    ".cpp": "c++",
    ".cxx": "c++",
    ".hpp": "c++",
    ".cs": "csharp",
    ".swift": "swift",
    ".toml": "toml",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".json": "json",
    ".ini": "ini",
    ".cfg": "ini",
    ".md": "markdown",
    ".mdx": "markdown",
    ".rst": "rst",
    ".txt": "text",
    ".html": "html",
    ".css": "css",
    ".sql": "sql",
    ".sh": "shell",
    ".bash": "shell",
}

_CONFIG_EXTS = {".toml", ".yaml", ".yml", ".json", ".ini", ".cfg", ".env"}
_DOC_EXTS = {".md", ".mdx", ".rst", ".txt", ".adoc"}
_CONFIG_NAMES = {
    "dockerfile", "makefile", "go.mod", "go.sum", "package.json",
    "pyproject.toml", "setup.cfg", "cargo.toml", ".gitignore",
}

_TEST_DIRS = {"test", "tests", "__tests__", "spec", "specs", "testdata"}
_DOC_DIRS = {"doc", "docs", "documentation"}
VENDORED_DIRS = {
    "vendor", "node_modules", "third_party", "external", "site-packages",
}

ENTRY_POINT_NAMES = {
    "main.py", "app.py", "server.py", "manage.py", "wsgi.py", "asgi.py",
    "__main__.py", "index.js", "index.ts", "main.go", "main.rs",
}


def normalize(path: str) -> str:
    """Return a forward-slash path without a leading ``./``."""
    cleaned = path.replace("\\", "/")
    while cleaned.startswith("./"):
        cleaned = cleaned[2:]
    return cleaned


def basename(path: str) -> str:
    return posixpath.basename(normalize(path))


def dir_segments(path: str) -> list[str]:
    """Lower-cased directory components of *path* (file name excluded)."""
    directory = posixpath.dirname(normalize(path)).lower()
    return [part for part in directory.split("/") if part]


def extension(path: str) -> str:
    return posixpath.splitext(basename(path))[1].lower()


def is_test_path(path: str) -> bool:
    """True for test directories and test-style file names.

    Covers ``tests/…``, ``foo_test.go``, ``test_foo.py``, ``foo.test.ts``
    and ``foo.spec.js``.
    """
    if any(seg in _TEST_DIRS for seg in dir_segments(path)):
        return True
    name = basename(path).lower()
    stem = posixpath.splitext(name)[0]
    return (
        stem.startswith("test_")
        or stem.endswith("_test")
        or stem.endswith(".test")
        or stem.endswith(".spec")
        or stem == "conftest"
    )


def is_doc_path(path: str) -> bool:
    return any(seg in _DOC_DIRS for seg in dir_segments(path))


def is_vendored_path(path: str) -> bool:
    return any(seg in VENDORED_DIRS for seg in dir_segments(path))


def is_entry_point(path: str) -> bool:
    name = basename(path).lower()
    if name in ENTRY_POINT_NAMES:
        return True
    segments = dir_segments(path)
    return bool(segments) and segments[0] == "cmd" and extension(path) == ".go"


def detect_language(path: str) -> str:
    """Infer the language tag from the file extension."""
    return _EXT_LANG.get(extension(path), "unknown")


def classify_kind(path: str) -> FileKind:
    """Infer a FileKind from the path alone."""
    name = basename(path).lower()
    ext = extension(path)
    if is_test_path(path):
        return FileKind.TEST
    if name in _CONFIG_NAMES or ext in _CONFIG_EXTS:
        return FileKind.CONFIG
    if ext in _DOC_EXTS or name.startswith("readme"):
        return FileKind.DOC
    if ext in _EXT_LANG:
        return FileKind.SOURCE
    return FileKind.UNKNOWN
