"""Tests for path resolution and locked writes."""

import pytest

from mcp_cortex.store import (
    ARCHIVE,
    BRANCH_NOTE,
    CHECKLIST,
    CONTEXT,
    KNOWLEDGE,
    atomic_write,
    sanitize_name,
)


class TestSanitizeName:
    """Tests for sanitize_name."""

    def test_safe_characters_kept(self):
        assert sanitize_name("feature-x_1") == "feature-x_1"

    def test_unsafe_characters_replaced(self):
        assert sanitize_name("feature/login page.v2") == "feature_login_page_v2"


class TestResolvePath:
    """Tests for CortexStore.resolve_path."""

    def test_layout(self, store, config):
        root = config.storage_root
        assert store.resolve_path(BRANCH_NOTE, "my proj", "feat/a") == root / "branch_notes" / "my_proj" / "feat_a.md"
        assert store.resolve_path(ARCHIVE, "p", "main", name="20240102") == root / "branch_notes" / "p" / "archives" / "main_20240102.md"
        assert store.resolve_path(CONTEXT, "p", "main") == root / "context" / "p" / "main_context.md"
        assert store.resolve_path(KNOWLEDGE, "p", name="2024-01-01-Cache") == root / "knowledge" / "p" / "2024-01-01-Cache.md"
        assert store.resolve_path(CHECKLIST, "p", name="2024-01-01-Login") == root / "checklists" / "p" / "2024-01-01-Login-checklist.md"

    def test_name_with_extension_used_verbatim(self, store, config):
        path = store.resolve_path(CHECKLIST, "p", name="custom.md")
        assert path == config.storage_root / "checklists" / "p" / "custom.md"

    def test_branch_required(self, store):
        with pytest.raises(ValueError):
            store.resolve_path(BRANCH_NOTE, "p")

    def test_name_required(self, store):
        with pytest.raises(ValueError):
            store.resolve_path(KNOWLEDGE, "p")

    def test_unknown_kind(self, store):
        with pytest.raises(ValueError, match="Unknown document kind"):
            store.resolve_path("scratch", "p", "b")


class TestReadWrite:
    """Tests for reading, writing and listing documents."""

    def test_missing_file_reads_none(self, store):
        assert store.read_text(store.resolve_path(BRANCH_NOTE, "p", "b")) is None

    def test_write_and_read(self, store):
        path = store.resolve_path(BRANCH_NOTE, "p", "b")
        store.write_text(path, "hello")
        assert store.read_text(path) == "hello"
        assert not path.with_suffix(".md.tmp").exists()

    def test_append_writes_header_once(self, store):
        path = store.resolve_path(BRANCH_NOTE, "p", "b")
        store.append_text(path, "one\n", header="# H\n")
        store.append_text(path, "two\n", header="# H\n")
        assert store.read_text(path) == "# H\none\ntwo\n"

    def test_delete_removes_file_and_lock(self, store):
        path = store.resolve_path(BRANCH_NOTE, "p", "b")
        store.write_text(path, "x")
        store.delete(path)
        assert not path.exists()
        assert not path.with_suffix(".md.lock").exists()

    def test_atomic_write_cleans_up_on_error(self, temp_root):
        target = temp_root / "doc.md"
        with pytest.raises(RuntimeError):
            with atomic_write(target) as f:
                f.write("partial")
                raise RuntimeError("boom")
        assert not target.exists()
        assert not (temp_root / "doc.md.tmp").exists()

    def test_listing(self, store):
        for branch in ("b", "a"):
            store.write_text(store.resolve_path(BRANCH_NOTE, "proj", branch), "x")
        store.write_text(store.resolve_path(BRANCH_NOTE, "other", "main"), "x")

        assert store.list_projects(BRANCH_NOTE) == ["other", "proj"]
        assert store.list_documents(BRANCH_NOTE, "proj") == ["a.md", "b.md"]
        assert [(p, b) for p, b, _ in store.branch_note_paths()] == [("other", "main"), ("proj", "a"), ("proj", "b")]
        assert [(p, b) for p, b, _ in store.branch_note_paths(branch="main")] == [("other", "main")]

    def test_lock_files_are_not_listed(self, store):
        path = store.resolve_path(BRANCH_NOTE, "proj", "a")
        store.write_text(path, "x")
        assert path.with_suffix(".md.lock").exists()
        assert store.list_documents(BRANCH_NOTE, "proj") == ["a.md"]

    def test_find_document_partial_name(self, store):
        path = store.resolve_path(CHECKLIST, "p", name="2024-01-01-Login_Flow")
        store.write_text(path, "x")
        assert store.find_document(CHECKLIST, "p", "Login") == path

    def test_ensure_directories(self, store, config):
        created = store.ensure_directories()
        assert len(created) == 4
        assert config.get_knowledge_path().is_dir()
        assert store.ensure_directories() == []
