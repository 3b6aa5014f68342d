# sentinelhub/discovery/filters.py
"""
Name-based decisions made while walking a remote tree:
which directories to skip, which files are worth a ScanUnit, which of
those are dependency/lock files, and which names are critical.
"""

from __future__ import annotations

import posixpath
from typing import Optional

SKIP_DIRS = frozenset({
    ".git", "node_modules", "dist", "build", "__pycache__",
    ".next", ".vscode", "coverage", "tmp", "temp",
    "vendor", "third_party", "external", "deps",
})

LANGUAGE_BY_EXTENSION = {
    # JavaScript / TypeScript
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    # Other languages
    ".py": "python",
    ".java": "java",
    ".php": "php",
    ".go": "go",
    ".rb": "ruby",
    ".cs": "csharp",
    ".cpp": "cpp",
    ".c": "c",
    ".rs": "rust",
    ".sh": "shell",
    # Config / data
    ".env": "env",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".json": "json",
    ".xml": "xml",
    ".toml": "toml",
    ".ini": "ini",
    ".cfg": "ini",
    ".conf": "ini",
    ".properties": "ini",
    ".tf": "terraform",
    ".sql": "sql",
    ".txt": "text",
    ".pem": "text",
    ".key": "text",
}

# Dependency manifests and lock files: scanned for secrets and
# dependency advisories, never for static-analysis vulnerabilities.
DEPENDENCY_FILES = frozenset({
    "package.json", "package-lock.json",
    "yarn.lock", "pnpm-lock.yaml",
    "requirements.txt", "Pipfile.lock", "poetry.lock",
    "go.mod", "go.sum",
    "Cargo.toml", "Cargo.lock", "composer.lock",
    "pom.xml", "build.gradle",
})

CRITICAL_NAMES = frozenset({
    ".env", ".env.local", ".env.production", ".env.example",
    "docker-compose.yml", "Dockerfile", ".gitlab-ci.yml",
})
CRITICAL_FRAGMENTS = (".github/workflows", "config", "secrets")


def should_skip_dir(path: str) -> bool:
    return any(part in SKIP_DIRS for part in path.strip("/").split("/"))


def extension_of(path: str) -> str:
    name = posixpath.basename(path)
    if name.startswith(".env"):
        return ".env"
    return posixpath.splitext(name)[1].lower()


def detect_language(path: str) -> Optional[str]:
    return LANGUAGE_BY_EXTENSION.get(extension_of(path))


def is_dependency_file(path: str) -> bool:
    return posixpath.basename(path) in DEPENDENCY_FILES


def is_critical_by_name(path: str) -> bool:
    name = posixpath.basename(path)
    if name in CRITICAL_NAMES:
        return True
    lowered = path.lower()
    return any(fragment in lowered for fragment in CRITICAL_FRAGMENTS)


def is_scannable(path: str) -> bool:
    name = posixpath.basename(path)
    return (
        extension_of(path) in LANGUAGE_BY_EXTENSION
        or name in DEPENDENCY_FILES
        or name.startswith("Dockerfile")
        or is_critical_by_name(path)
    )
