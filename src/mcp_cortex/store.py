"""Path-addressable markdown store with locked, atomic writes."""

from __future__ import annotations

import logging
import os
import re
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, Optional

import portalocker

from .config import CortexConfig

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9\-_]")

BRANCH_NOTE = "branch_note"
ARCHIVE = "archive"
CONTEXT = "context"
KNOWLEDGE = "knowledge"
CHECKLIST = "checklist"

KINDS = (BRANCH_NOTE, ARCHIVE, CONTEXT, KNOWLEDGE, CHECKLIST)

CONTEXT_SUFFIX = "_context.md"
CHECKLIST_SUFFIX = "-checklist.md"


def sanitize_name(name: str) -> str:
    """Replace every character outside [a-zA-Z0-9-_] with an underscore."""
    return _UNSAFE_CHARS.sub("_", name)


@contextmanager
def file_lock(path: Path, timeout: float = 10.0) -> Generator[None, None, None]:
    """Acquire an exclusive lock on a file.

    Creates a .lock file alongside the target file.

    Raises:
        portalocker.LockException: If lock cannot be acquired
    """
    lock_path = path.with_suffix(path.suffix + ".lock")
    lock_path.parent.mkdir(parents=True, exist_ok=True)

    if not lock_path.exists():
        lock_path.touch()

    with portalocker.Lock(lock_path, timeout=timeout):
        yield


@contextmanager
def atomic_write(path: Path, encoding: str = "utf-8") -> Generator:
    """Write to a file atomically via a temporary file and rename."""
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(tmp_path, "w", encoding=encoding, newline="") as f:
            yield f

        # Windows cannot rename over an existing file
        if os.name == "nt" and path.exists():
            path.unlink()
        tmp_path.rename(path)

    except Exception:
        if tmp_path.exists():
            tmp_path.unlink()
        raise


class CortexStore:
    """Resolves document paths and performs the filesystem reads and writes.

    Every other component addresses documents through ``resolve_path`` so the
    directory layout is defined in exactly one place:

        <root>/branch_notes/<project>/<branch>.md
        <root>/branch_notes/<project>/archives/<branch>_<YYYYMMDD>.md
        <root>/context/<project>/<branch>_context.md
        <root>/knowledge/<project>/<doc>.md
        <root>/checklists/<project>/<name>-checklist.md
    """

    def __init__(self, config: CortexConfig):
        self.config = config

    # ========== Path resolution ==========

    def kind_root(self, kind: str) -> Path:
        """Top-level directory holding every project of a document kind."""
        if kind in (BRANCH_NOTE, ARCHIVE):
            return self.config.get_branch_notes_path()
        if kind == CONTEXT:
            return self.config.get_context_path()
        if kind == KNOWLEDGE:
            return self.config.get_knowledge_path()
        if kind == CHECKLIST:
            return self.config.get_checklists_path()
        raise ValueError(f"Unknown document kind: {kind}")

    def project_dir(self, kind: str, project: str) -> Path:
        path = self.kind_root(kind) / sanitize_name(project)
        if kind == ARCHIVE:
            path = path / "archives"
        return path

    def resolve_path(
        self,
        kind: str,
        project: str,
        branch: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Path:
        """Resolve the file path for a document.

        Args:
            kind: One of branch_note, archive, context, knowledge, checklist
            project: Project name (sanitized)
            branch: Branch name (sanitized); required for branch_note, archive, context
            name: Document name; archive date for archives, file stem for
                knowledge and checklists. A name ending in .md is used verbatim.
        """
        directory = self.project_dir(kind, project)

        if kind in (BRANCH_NOTE, ARCHIVE, CONTEXT):
            if not branch:
                raise ValueError(f"A branch name is required for {kind} documents")
            safe_branch = sanitize_name(branch)
            if kind == BRANCH_NOTE:
                return directory / f"{safe_branch}.md"
            if kind == CONTEXT:
                return directory / f"{safe_branch}{CONTEXT_SUFFIX}"
            if not name:
                raise ValueError("An archive date is required for archived branch notes")
            return directory / f"{safe_branch}_{name}.md"

        if not name:
            raise ValueError(f"A document name is required for {kind} documents")
        if name.endswith(".md"):
            return directory / name
        if kind == CHECKLIST:
            return directory / f"{name}{CHECKLIST_SUFFIX}"
        return directory / f"{name}.md"

    # ========== Reading ==========

    def read_text(self, path: Path) -> Optional[str]:
        """Read a document; a missing file yields None.

        Other OS errors (permissions, disk failures) propagate.
        """
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def exists(self, path: Path) -> bool:
        return path.is_file()

    def last_modified(self, path: Path) -> Optional[datetime]:
        try:
            return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        except FileNotFoundError:
            return None

    def list_projects(self, kind: str) -> list[str]:
        """Project directory names for a kind, sorted."""
        root = self.kind_root(kind)
        if not root.is_dir():
            return []
        return sorted(
            p.name for p in root.iterdir()
            if p.is_dir() and not p.name.startswith(".")
        )

    def list_documents(self, kind: str, project: str, suffix: str = ".md") -> list[str]:
        """Document file names in a project directory, sorted."""
        directory = self.project_dir(kind, project)
        if not directory.is_dir():
            return []
        return sorted(
            p.name for p in directory.iterdir()
            if p.is_file() and p.name.endswith(suffix) and not p.name.startswith(".")
        )

    def find_document(self, kind: str, project: str, name: str) -> Path:
        """Locate a knowledge document or checklist by exact or partial name.

        Falls back to the resolved path for ``name`` when nothing matches, so
        callers see a missing file rather than a lookup error.
        """
        if name.endswith(".md"):
            return self.resolve_path(kind, project, name=name)

        suffix = CHECKLIST_SUFFIX if kind == CHECKLIST else ".md"
        for file_name in self.list_documents(kind, project, suffix=suffix):
            if name in file_name:
                return self.project_dir(kind, project) / file_name

        return self.resolve_path(kind, project, name=name)

    def branch_note_paths(
        self,
        project: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> list[tuple[str, str, Path]]:
        """(project, branch, path) for every branch note matching the scope.

        Either filter may be omitted; results are ordered by project then branch.
        """
        projects = [sanitize_name(project)] if project else self.list_projects(BRANCH_NOTE)
        found = []
        for proj in projects:
            for file_name in self.list_documents(BRANCH_NOTE, proj):
                branch_name = file_name[:-len(".md")]
                if branch and branch_name != sanitize_name(branch):
                    continue
                found.append((proj, branch_name, self.project_dir(BRANCH_NOTE, proj) / file_name))
        return found

    # ========== Writing ==========

    def write_text(self, path: Path, content: str) -> None:
        """Replace a document's content under lock, atomically."""
        with file_lock(path, timeout=self.config.lock_timeout):
            with atomic_write(path) as f:
                f.write(content)
        logger.debug("Wrote %s (%d chars)", path, len(content))

    def append_text(self, path: Path, content: str, header: Optional[str] = None) -> None:
        """Append to a document under lock, writing ``header`` first if it is new."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with file_lock(path, timeout=self.config.lock_timeout):
            is_new = not path.exists()
            with open(path, "a", encoding="utf-8", newline="") as f:
                if is_new and header:
                    f.write(header)
                f.write(content)
        logger.debug("Appended %d chars to %s", len(content), path)

    def delete(self, path: Path) -> None:
        with file_lock(path, timeout=self.config.lock_timeout):
            path.unlink()
        lock_path = path.with_suffix(path.suffix + ".lock")
        if lock_path.exists():
            lock_path.unlink()

    def ensure_directories(self) -> list[Path]:
        """Create the four top-level document directories."""
        created = []
        for kind in (BRANCH_NOTE, CONTEXT, KNOWLEDGE, CHECKLIST):
            root = self.kind_root(kind)
            if not root.exists():
                root.mkdir(parents=True, exist_ok=True)
                created.append(root)
        return created
