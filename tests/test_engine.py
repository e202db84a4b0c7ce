"""Tests for the cortex engine operations."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from mcp_cortex.engine import CortexEngine, InvalidArgumentError, ResourceNotFoundError
from mcp_cortex.store import ARCHIVE, BRANCH_NOTE, CHECKLIST


def clock(engine, start=datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc)):
    """Make engine._now return start, start+1m, start+2m, ..."""
    state = {"now": start - timedelta(minutes=1)}

    def _now():
        state["now"] += timedelta(minutes=1)
        return state["now"]

    engine._now = _now


@pytest.fixture
def clocked(engine):
    clock(engine)
    return engine


class TestBranchNotes:
    """Tests for branch note operations."""

    def test_update_creates_note_with_header(self, clocked):
        clocked.update_branch_note("First step", project="shop", branch="feat/a")
        content = clocked.read_branch_note(project="shop", branch="feat/a")
        assert content == "# Branch Note: feat/a (shop)\n\n## 2024-03-01 09:00:00\nFirst step\n\n"

    def test_update_uses_defaults(self, clocked, config):
        clocked.update_branch_note("hello")
        path = clocked.store.resolve_path(BRANCH_NOTE, config.default_project, config.default_branch)
        assert path.exists()

    def test_update_requires_message(self, engine):
        with pytest.raises(InvalidArgumentError):
            engine.update_branch_note("  ")

    def test_read_missing_note(self, engine):
        assert "No branch note exists yet" in engine.read_branch_note(project="p", branch="b")

    def test_commit_separator_requires_note(self, engine):
        with pytest.raises(ResourceNotFoundError):
            engine.add_commit_separator("abcdef1234", "msg", project="p", branch="b")

    def test_commit_separator_format(self, clocked):
        clocked.update_branch_note("work", project="p", branch="b")
        result = clocked.add_commit_separator("abcdef1234567", "Ship it", project="p", branch="b")
        assert "abcdef12" in result
        content = clocked.read_branch_note(project="p", branch="b")
        assert content.endswith(
            "\n---\n\n## COMMIT: abcdef12 | 2024-03-01 09:01:00\n"
            "**Full Hash:** abcdef1234567\n**Message:** Ship it\n\n---\n\n"
        )

    def test_filter_uncommitted(self, clocked):
        clocked.update_branch_note("before commit", project="p", branch="b")
        clocked.add_commit_separator("abcdef1234567", "c1", project="p", branch="b")
        clocked.update_branch_note("after commit", project="p", branch="b")

        text = clocked.filter_branch_note(project="p", branch="b")
        assert "after commit" in text
        assert "before commit" not in text
        assert "1 entries since last commit" in text

    def test_filter_without_commits_shows_everything(self, clocked):
        clocked.update_branch_note("only entry", project="p", branch="b")
        text = clocked.filter_branch_note(project="p", branch="b")
        assert "No commit separators found" in text
        assert "only entry" in text

    def test_filter_all_committed(self, clocked):
        clocked.update_branch_note("entry", project="p", branch="b")
        clocked.add_commit_separator("abcdef1234567", "c1", project="p", branch="b")
        assert "All changes have been committed" in clocked.filter_branch_note(project="p", branch="b")

    def test_filter_by_commit_hash(self, clocked):
        clocked.update_branch_note("one", project="p", branch="b")
        clocked.add_commit_separator("1111111111", "first", project="p", branch="b")
        clocked.update_branch_note("two", project="p", branch="b")
        clocked.update_branch_note("three", project="p", branch="b")
        clocked.add_commit_separator("2222222222", "second", project="p", branch="b")

        text = clocked.filter_branch_note(project="p", branch="b", commit_hash="2222222222")
        assert "two" in text and "three" in text
        assert "\none\n" not in text
        assert "---" not in text
        assert "No commit matching" in clocked.filter_branch_note(project="p", branch="b", commit_hash="999")

    def test_filter_by_dates_is_inclusive(self, engine, write_note):
        write_note("p", "b", (
            "# Branch Note: b (p)\n\n"
            "## 2024-01-01 10:00:00\njan one\n\n"
            "## 2024-01-02 10:00:00\njan two\n\n"
            "## 2024-01-03 10:00:00\njan three\n\n"
        ))
        text = engine.filter_branch_note(project="p", branch="b", after_date="2024-01-02", before_date="2024-01-02")
        assert "jan two" in text
        assert "jan one" not in text and "jan three" not in text

    def test_filter_bad_date(self, clocked):
        clocked.update_branch_note("x", project="p", branch="b")
        with pytest.raises(InvalidArgumentError):
            clocked.filter_branch_note(project="p", branch="b", before_date="soon")

    def test_archive_moves_note(self, clocked):
        clocked.update_branch_note("x", project="p", branch="b")
        clocked.archive_branch_note(project="p", branch="b", archive_date="2024-02-03")
        assert not clocked.store.resolve_path(BRANCH_NOTE, "p", "b").exists()
        archived = clocked.store.resolve_path(ARCHIVE, "p", "b", name="20240203")
        assert "x" in archived.read_text(encoding="utf-8")

    def test_archive_missing_note(self, engine):
        with pytest.raises(ResourceNotFoundError):
            engine.archive_branch_note(project="p", branch="b")

    def test_clear_keeps_header_and_archives(self, clocked):
        clocked.update_branch_note("x", project="p", branch="b")
        clocked.clear_branch_note(project="p", branch="b")
        assert clocked.read_branch_note(project="p", branch="b") == "# Branch Note: b (p)\n\n"
        assert clocked.store.list_documents(ARCHIVE, "p") == ["b_20240301.md"]

    def test_clear_without_archive(self, clocked):
        clocked.update_branch_note("x", project="p", branch="b")
        clocked.clear_branch_note(project="p", branch="b", create_archive=False, keep_header=False)
        assert clocked.read_branch_note(project="p", branch="b") == ""
        assert clocked.store.list_documents(ARCHIVE, "p") == []

    def test_list_all_orders_main_and_stage_first(self, clocked):
        for project, branch in [("p", "zeta"), ("p", "stage"), ("q", "alpha"), ("q", "main"), ("q", "empty")]:
            clocked.update_branch_note("entry", project=project, branch=branch)
        clocked.clear_branch_note(project="q", branch="empty", create_archive=False)

        text = clocked.list_all_branch_notes(current_project="q")
        order = [line for line in text.splitlines() if line.startswith("## Branch:")]
        assert order == ["## Branch: main", "## Branch: stage", "## Branch: alpha", "## Branch: zeta"]
        assert "- q: 2 branches (current)" in text

        with_empty = clocked.list_all_branch_notes(include_empty=True)
        assert "## Branch: empty" in with_empty

    def test_list_all_empty(self, engine):
        assert "No branch notes found" in engine.list_all_branch_notes()


class TestMessages:
    """Tests for commit message and Jira comment generation."""

    def test_commit_message_single_entry(self, clocked):
        clocked.update_branch_note("Add login form", project="p", branch="b")
        assert clocked.generate_commit_message(project="p", branch="b", ticket="ABC-1") == "[ABC-1] Add login form"

    def test_commit_message_multiple_entries_since_commit(self, clocked):
        clocked.update_branch_note("old work", project="p", branch="b")
        clocked.add_commit_separator("1111111111", "first", project="p", branch="b")
        clocked.update_branch_note("Add form", project="p", branch="b")
        clocked.update_branch_note("Validate form", project="p", branch="b")

        message = clocked.generate_commit_message(project="p", branch="b")
        assert message == "Validate form\n\n- Add form\n- Validate form"

    def test_commit_message_nothing_new(self, clocked):
        clocked.update_branch_note("work", project="p", branch="b")
        clocked.add_commit_separator("1111111111", "first", project="p", branch="b")
        assert clocked.generate_commit_message(project="p", branch="b") == "No changes since last commit"

    def test_commit_message_missing_note(self, engine):
        assert "No branch note entries found" in engine.generate_commit_message(project="p", branch="b")

    def test_jira_comment(self, clocked):
        clocked.update_branch_note("Did the thing", project="p", branch="b")
        text = clocked.generate_jira_comment("ABC-1", project="p", branch="b", jira_base_url="https://jira.example.com/")
        assert text.startswith("*Updates from branch: b*")
        assert "h5. 2024-03-01 09:00:00\nDid the thing" in text
        assert "[View ticket|https://jira.example.com/browse/ABC-1]" in text

    def test_jira_comment_missing_note(self, engine):
        with pytest.raises(ResourceNotFoundError):
            engine.generate_jira_comment("ABC-1", project="p", branch="b")


class TestContextFiles:
    """Tests for context file operations."""

    def test_write_and_read(self, clocked):
        clocked.update_context_file(
            "Login", "Build the login page", project="p", branch="b",
            additional_info="Uses OAuth", related_projects="auth, web",
        )
        text = clocked.read_context_file(project="p", branch="b")
        assert text.startswith("[Project: p]\n# Login")
        assert "## Additional Information\nUses OAuth" in text
        assert "- auth\n- web" in text

    def test_cross_project_warning(self, clocked):
        clocked.update_context_file("Login", "desc", project="p", branch="b")
        assert clocked.read_context_file(project="p", branch="b", current_project="other").startswith("WARNING")
        assert not clocked.read_context_file(project="p", branch="b", current_project="p").startswith("WARNING")
        assert not clocked.read_context_file(project="p", branch="b", current_project="all").startswith("WARNING")

    def test_read_missing(self, engine):
        assert "No context file exists yet" in engine.read_context_file(project="p", branch="b")

    def test_list(self, clocked):
        clocked.update_context_file("Login", "desc", project="p", branch="b")
        clocked.update_context_file("Search", "desc", project="q", branch="main")

        own = clocked.list_context_files(project="p")
        assert "- Branch: b, Title: Login" in own
        assert "Search" not in own

        everything = clocked.list_context_files(list_all=True, current_project="p")
        assert "## Project: q (EXTERNAL PROJECT)" in everything
        assert "## Project: p\n" in everything

    def test_list_none(self, engine):
        assert "No context files found" in engine.list_context_files(project="p")


class TestTacitKnowledge:
    """Tests for knowledge documents."""

    def test_create_and_read(self, clocked):
        result = clocked.create_tacit_knowledge(
            "Cache warmup", "Cold starts", "Prefill on deploy", "Faster starts",
            project="p", tags=["Perf", "cache"],
        )
        assert "2024-03-01-Cache_warmup.md" in result

        listing = clocked.read_tacit_knowledge(project="p")
        assert "- 2024-03-01-Cache_warmup.md" in listing

        doc = clocked.read_tacit_knowledge(project="p", document_name="Cache_warmup")
        assert "**Title:** Cache warmup" in doc
        assert "**Author:** tester" in doc
        assert "**Tags:** Perf, cache" in doc

    def test_search_by_tag_and_term(self, clocked):
        clocked.create_tacit_knowledge("One", "p1", "a1", "o1", project="p", tags="perf")
        clocked.create_tacit_knowledge("Two", "p2", "a2", "o2", project="q", tags="security")

        by_tag = clocked.read_tacit_knowledge(search_tags=["PERF"])
        assert "**One**" in by_tag and "**Two**" not in by_tag

        by_term = clocked.read_tacit_knowledge(search_term="a2")
        assert "**Two**" in by_term

        local_only = clocked.read_tacit_knowledge(project="p", search_term="a2", cross_project=False)
        assert "No knowledge documents found" in local_only

    def test_missing_document(self, engine):
        with pytest.raises(ResourceNotFoundError):
            engine.read_tacit_knowledge(project="p", document_name="nothing")

    def test_required_fields(self, engine):
        with pytest.raises(InvalidArgumentError):
            engine.create_tacit_knowledge("Title", "", "approach", "outcome")


class TestChecklists:
    """Tests for completion checklists."""

    @pytest.fixture
    def checklist(self, clocked):
        clocked.create_completion_checklist(
            "Login Flow", "Users can sign in\nUsers can sign out", "OAuth support",
            project="p", owner="ana", test_criteria="Unit tests pass",
        )
        return clocked

    def test_create_and_list(self, checklist):
        assert checklist.read_checklist(project="p") == "# Available Checklists for p\n\n- 2024-03-01-Login_Flow-checklist.md"
        content = checklist.read_checklist(project="p", checklist_name="Login")
        assert "### Objectives\n- [ ] Users can sign in\n- [ ] Users can sign out" in content
        assert "**Implementation Complete:** _____________ Date: _______" in content

    def test_update_item(self, checklist):
        checklist.update_checklist("Login", project="p", item_path="Objectives.2", status=True)
        content = checklist.read_checklist(project="p", checklist_name="Login")
        assert "- [ ] Users can sign in\n- [x] Users can sign out" in content

        checklist.update_checklist("Login", project="p", item_path="Objectives.2", status=False)
        assert "- [x]" not in checklist.read_checklist(project="p", checklist_name="Login")

    def test_update_requirements_section(self, checklist):
        checklist.update_checklist("Login", project="p", item_path="Requirements.1", status=True)
        assert "- [x] OAuth support" in checklist.read_checklist(project="p", checklist_name="Login")

    @pytest.mark.parametrize("item_path", ["Objectives", "Objectives.0", "Objectives.9", "Nope.1"])
    def test_bad_item_path(self, checklist, item_path):
        with pytest.raises(InvalidArgumentError):
            checklist.update_checklist("Login", project="p", item_path=item_path, status=True)

    def test_update_needs_mode(self, checklist):
        with pytest.raises(InvalidArgumentError):
            checklist.update_checklist("Login", project="p")

    def test_update_missing_checklist(self, engine):
        with pytest.raises(ResourceNotFoundError):
            engine.update_checklist("ghost", project="p", item_path="Objectives.1", status=True)

    def test_auto_update_from_branch_notes(self, checklist):
        checklist.update_branch_note("Key lesson: cache tokens", project="p", branch="main")
        result = checklist.update_checklist("Login", project="p", auto_update=True, branch="main")
        assert "Auto-updated" in result
        assert "- [x] Lessons learned during development" in checklist.read_checklist(project="p", checklist_name="Login")

    def test_auto_update_nothing_matched(self, checklist):
        result = checklist.update_checklist("Login", project="p", auto_update=True, branch="main")
        assert "No items were auto-updated" in result

    def test_sign_off(self, checklist):
        result = checklist.sign_off_checklist("Login", "Testing", "Ana", project="p")
        assert "Signed off Testing" in result
        content = checklist.read_checklist(project="p", checklist_name="Login")
        assert "**Testing Complete:** Ana Date: 2024-03-01" in content
        assert "already signed off" in checklist.sign_off_checklist("Login", "Testing", "Bo", project="p")

    def test_sign_off_invalid_item(self, checklist):
        with pytest.raises(InvalidArgumentError, match="Valid options"):
            checklist.sign_off_checklist("Login", "Deploy", "Ana", project="p")


class TestAnalyses:
    """Tests for timeline, survey, narrative and gap operations."""

    def test_timeline_scopes(self, clocked):
        clocked.update_branch_note("Phase 1: plan", project="p", branch="main")
        clocked.update_branch_note("other project work", project="q", branch="main")

        assert clocked.reconstruct_timeline(project="p", branch="main").startswith("# Timeline Reconstruction: p/main")
        everything = clocked.reconstruct_timeline()
        assert "# Timeline Reconstruction: all projects" in everything
        assert "[q/main]" in everything
        assert "other project work" not in clocked.reconstruct_timeline(project="p")

    def test_timeline_kind_switches(self, clocked):
        clocked.update_branch_note("Phase 1: plan", project="p", branch="main")
        clocked.add_commit_separator("1111111111", "first", project="p", branch="main")

        no_commits = clocked.reconstruct_timeline(project="p", include_commits=False)
        assert "Commit 11111111" not in no_commits
        assert "Entry: Phase 1: plan" in no_commits

        only_phases = clocked.reconstruct_timeline(project="p", include_commits=False, include_entries=False)
        assert "Phase 1: plan" in only_phases
        assert "Entry:" not in only_phases

    def test_timeline_bad_range(self, engine):
        with pytest.raises(InvalidArgumentError):
            engine.reconstruct_timeline(date_range="2024-05-01,2024-01-01")

    def test_timeline_no_events(self, engine):
        assert engine.reconstruct_timeline(project="p") == "No timeline events found for project p."

    def test_survey(self, clocked):
        clocked.update_branch_note("Started ABC-12 in python", project="p", branch="main")
        clocked.update_branch_note("Deployed ABC-12 fix", project="q", branch="hotfix")
        clocked.add_commit_separator("1111111111", "released", project="q", branch="hotfix")

        report = clocked.analyze_branch_notes(current_project="q")
        assert [(a.project, a.branch) for a in report.analyses] == [("q", "hotfix"), ("p", "main")]
        assert report.analyses[0].is_current_project
        ticket = next(g for g in report.relationship_groups if g.value == "ABC-12")
        assert ticket.branch_count == 2

        text = clocked.survey_branches(current_project="q")
        assert "- **ABC-12**: 2 branches" in text

    def test_survey_min_score_and_skips_header_only(self, clocked, write_note):
        clocked.update_branch_note("short", project="p", branch="main")
        write_note("p", "empty", "# Branch Note: empty (p)\n\n")

        report = clocked.analyze_branch_notes()
        assert [a.branch for a in report.analyses] == ["main"]
        assert clocked.analyze_branch_notes(min_completeness_score=99).analyses == []

    def test_survey_without_storage(self, engine):
        assert "No branch notes directory found" in engine.survey_branches()

    def test_survey_skips_unreadable_note(self, clocked):
        clocked.update_branch_note("fine", project="p", branch="ok")
        clocked.update_branch_note("fine", project="p", branch="broken")
        broken = clocked.store.resolve_path(BRANCH_NOTE, "p", "broken")
        original = clocked.store.read_text

        def flaky(path):
            if path == broken:
                raise PermissionError("denied")
            return original(path)

        with patch.object(clocked.store, "read_text", side_effect=flaky):
            report = clocked.analyze_branch_notes()
        assert [a.branch for a in report.analyses] == ["ok"]

    def test_narrative(self, clocked):
        clocked.update_branch_note("Decided to use a queue for events.", project="shop", branch="main")
        clocked.update_context_file("Order Pipeline", "Moves orders", project="shop", branch="main")
        clocked.create_tacit_knowledge("Queues", "Backpressure", "Chose Kafka because scale.", "Stable", project="shop")

        text = clocked.construct_narrative("shop")
        assert text.startswith("# Project Narrative: shop")
        assert "**Project**: Order Pipeline" in text
        assert "**Knowledge documents**: 1" in text
        assert "- **Decision**: use a queue for events" in text
        assert "- **Objective**: Moves orders" in text
        assert "## Production Readiness" in text

        without_context = clocked.construct_narrative("shop", include_context=False, include_knowledge=False)
        assert "Technical Implementation Project" in without_context
        assert "**Knowledge documents**: 0" in without_context

    def test_narrative_bad_type(self, engine):
        with pytest.raises(InvalidArgumentError):
            engine.construct_narrative("p", narrative_type="poem")

    def test_narrative_no_data(self, engine):
        assert engine.construct_narrative("p") == "No branch notes or knowledge documents found for p."

    def test_gap_analysis_with_checklist(self, clocked, temp_root):
        source = temp_root / "src_tree"
        source.mkdir()
        (source / "index.js").write_text("function a() {}\n", encoding="utf-8")

        text = clocked.analyze_documentation_gaps(str(source), project="p", create_checklist=True)
        assert "## HIGH Priority" in text
        checklist = clocked.store.resolve_path(CHECKLIST, "p", name="2024-03-01-documentation-gaps")
        assert f"**Checklist created**: {checklist}" in text
        assert "- [ ] Document entry point index.js" in checklist.read_text(encoding="utf-8")

    def test_gap_analysis_uses_config_defaults(self, engine, config, temp_root):
        config.gap_analysis.file_extensions = [".md"]
        source = temp_root / "src_tree"
        source.mkdir()
        (source / "index.js").write_text("function a() {}\n", encoding="utf-8")
        (source / "README.md").write_text("# hi\n", encoding="utf-8")

        text = engine.analyze_documentation_gaps(str(source), project="p")
        assert "**Files analyzed**: 1" in text

    def test_gap_analysis_negative_depth(self, engine, temp_root):
        with pytest.raises(InvalidArgumentError):
            engine.analyze_documentation_gaps(str(temp_root), project="p", max_depth=-1)


class TestIdempotence:
    """Read-only operations leave storage untouched and repeat exactly."""

    def test_analyses_are_repeatable(self, clocked):
        clocked.update_branch_note("Phase 1: plan ABC-1", project="p", branch="main")
        clocked.add_commit_separator("1111111111", "first", project="p", branch="main")
        root = clocked.config.storage_root
        before = sorted((p, p.stat().st_mtime_ns) for p in root.rglob("*.md"))

        assert clocked.reconstruct_timeline() == clocked.reconstruct_timeline()
        assert clocked.survey_branches() == clocked.survey_branches()
        assert clocked.construct_narrative("p") == clocked.construct_narrative("p")

        assert sorted((p, p.stat().st_mtime_ns) for p in root.rglob("*.md")) == before

    def test_engine_over_same_root_sees_same_data(self, clocked, config):
        clocked.update_branch_note("shared", project="p", branch="main")
        other = CortexEngine(config)
        assert "shared" in other.read_branch_note(project="p", branch="main")
