"""Core cortex engine - document storage operations and analyses."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from .config import CortexConfig
from .formatters import format_gap_report, format_narrative, format_survey, format_timeline
from .gaps import DocumentationGapAnalyzer, GapOptions
from .models import (
    SIGN_OFF_LABELS,
    BranchNoteEntry,
    CommitSeparator,
    CompletionChecklist,
    ContextFile,
    DocumentAnalysis,
    EventKind,
    NoteDocument,
    ProjectContext,
    ProjectStats,
    Readiness,
    SurveyReport,
    TacitKnowledge,
    branch_note_header,
    parse_event_time,
    utc_now,
)
from .narrative import NARRATIVE_TYPES, compose_narrative, parse_context
from .parsing import (
    COMMIT_MARKER,
    Section,
    count_body_words,
    count_nonblank_lines,
    count_section_entries,
    has_commit_marker,
    split_sections,
)
from .relationships import aggregate_relationships, detect_relationships
from .scoring import score
from .store import (
    ARCHIVE,
    BRANCH_NOTE,
    CHECKLIST,
    CHECKLIST_SUFFIX,
    CONTEXT,
    CONTEXT_SUFFIX,
    KNOWLEDGE,
    CortexStore,
    sanitize_name,
)
from .timeline import build_timeline, parse_date_range

logger = logging.getLogger(__name__)


class CortexError(Exception):
    """Base exception for cortex operations."""
    pass


class ResourceNotFoundError(CortexError):
    """Raised when an operation needs a document that does not exist."""
    pass


class InvalidArgumentError(CortexError):
    """Raised when a tool argument is missing or malformed."""
    pass


class MissingArgumentError(InvalidArgumentError):
    """Raised when a required tool argument is absent."""
    pass


# Checklist auto-update: item keyword -> phrases that show the work happened
AUTO_UPDATE_PATTERNS = {
    "reading branch notes": ["read branch note", "read_branch_note", "branch notes", "viewing branch notes"],
    "reading context files": ["read context file", "read_context_file", "context files", "viewing context"],
    "reading checklists": ["read checklist", "read_checklist", "viewing checklist"],
    "technical decisions": ["architecture decision", "technical choice", "design decision", "technical approach"],
    "implementation challenges": ["challenge", "obstacle", "difficulty", "problem solved", "workaround"],
    "lessons learned": ["lesson", "learning", "insight", "discovered", "realization"],
    "future improvements": ["improvement", "enhancement", "future work", "todo", "next steps"],
}

_CHECKBOX_RE = re.compile(r"- \[([ xX])\] (.*)")
_TAGS_RE = re.compile(r"^\*\*Tags:\*\*\s*(.*?)\s*$", re.MULTILINE)
_TITLE_RE = re.compile(r"^\*\*Title:\*\*\s*(.*?)\s*$", re.MULTILINE)
_H1_RE = re.compile(r"^# (.+?)\s*$", re.MULTILINE)

# Branches listed ahead of the alphabetical rest
PRIORITY_BRANCHES = ("main", "stage")


def _split_list(value: Union[str, list[str], None]) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [item.strip() for item in value if item and item.strip()]


def _body_lines(text: str) -> list[str]:
    return [line for line in text.splitlines() if line.strip() and line.strip() != "---"]


def _is_commit_section(section: Section) -> bool:
    return COMMIT_MARKER in section.heading


class CortexEngine:
    """Core engine managing branch notes, context, knowledge and checklists."""

    def __init__(self, config: CortexConfig):
        self.config = config
        self.store = CortexStore(config)

    def _now(self) -> datetime:
        return utc_now()

    def _project(self, project: Optional[str]) -> str:
        return project or self.config.default_project

    def _branch(self, branch: Optional[str]) -> str:
        return branch or self.config.default_branch

    @staticmethod
    def _require(value, name: str):
        if value is None or (isinstance(value, str) and not value.strip()):
            raise InvalidArgumentError(f"'{name}' is required")
        return value

    # ========== Branch notes ==========

    def update_branch_note(
        self,
        message: str,
        project: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> str:
        """Append a timestamped entry, creating the note with a header if new."""
        project, branch = self._project(project), self._branch(branch)
        self._require(message, "message")
        path = self.store.resolve_path(BRANCH_NOTE, project, branch)
        entry = BranchNoteEntry(timestamp=self._now(), message=message)
        self.store.append_text(path, entry.to_markdown(), header=branch_note_header(project, branch))
        logger.info("Updated branch note %s", path)
        return f'Updated branch note {project}/{branch} with: "{message}"'

    def add_commit_separator(
        self,
        commit_hash: str,
        commit_message: str,
        project: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> str:
        """Append a commit separator to an existing branch note.

        Raises:
            ResourceNotFoundError: If the branch note does not exist
        """
        project, branch = self._project(project), self._branch(branch)
        self._require(commit_hash, "commitHash")
        path = self.store.resolve_path(BRANCH_NOTE, project, branch)
        if not self.store.exists(path):
            raise ResourceNotFoundError(
                f'No branch note exists yet for branch "{branch}" in project "{project}". '
                "Create one with update_branch_note first."
            )
        separator = CommitSeparator(commit_hash=commit_hash.strip(), message=commit_message or "", timestamp=self._now())
        self.store.append_text(path, separator.to_markdown())
        return f"Added commit separator for commit {separator.short_hash} to {project}/{branch}."

    def read_branch_note(self, project: Optional[str] = None, branch: Optional[str] = None) -> str:
        project, branch = self._project(project), self._branch(branch)
        content = self.store.read_text(self.store.resolve_path(BRANCH_NOTE, project, branch))
        if content is None:
            return (
                f'No branch note exists yet for branch "{branch}" in project "{project}". '
                "Use update_branch_note to create one."
            )
        return content

    def _note_sections(self, content: str) -> list[Section]:
        return [s for s in split_sections(content) if s.level == 2]

    def _uncommitted_sections(self, sections: list[Section]) -> Optional[list[Section]]:
        """Sections after the last commit separator; None when there is none."""
        last_commit = None
        for index, section in enumerate(sections):
            if _is_commit_section(section):
                last_commit = index
        if last_commit is None:
            return None
        return sections[last_commit + 1:]

    @staticmethod
    def _render_sections(sections: list[Section]) -> list[str]:
        lines = []
        for section in sections:
            lines.append(f"## {section.heading}")
            lines.extend(_body_lines(section.body))
            lines.append("")
        return lines

    def _parse_day(self, value: Optional[str], name: str) -> Optional[datetime]:
        if not value:
            return None
        parsed = parse_event_time(value)
        if parsed is None:
            raise InvalidArgumentError(f"Invalid {name} '{value}'. Expected YYYY-MM-DD")
        return parsed

    def filter_branch_note(
        self,
        project: Optional[str] = None,
        branch: Optional[str] = None,
        commit_hash: Optional[str] = None,
        before_date: Optional[str] = None,
        after_date: Optional[str] = None,
        uncommitted_only: bool = True,
    ) -> str:
        """Show uncommitted work, the entries of one commit, or a date window.

        A commit hash selects the entries between that commit's separator and
        the separator before it. Date bounds are inclusive calendar days;
        entries whose heading is not a timestamp are always kept.
        """
        project, branch = self._project(project), self._branch(branch)
        content = self.store.read_text(self.store.resolve_path(BRANCH_NOTE, project, branch))
        if content is None:
            return f'No branch note exists yet for branch "{branch}" in project "{project}".'

        sections = self._note_sections(content)
        if not sections:
            return "Branch note exists but has no entries."

        if commit_hash:
            start = 0
            selected = None
            for index, section in enumerate(sections):
                if not _is_commit_section(section):
                    continue
                if commit_hash in section.heading or commit_hash in section.body:
                    selected = sections[start:index]
                    break
                start = index + 1
            if selected is None:
                return f"No commit matching {commit_hash} found in {project}/{branch}."
            if not selected:
                return f"Commit {commit_hash} has no entries recorded before it."
            lines = [f"# Branch Notes for Commit {commit_hash} in {project}/{branch}", ""]
            return "\n".join(lines + self._render_sections(selected))

        if uncommitted_only and not before_date and not after_date:
            pending = self._uncommitted_sections(sections)
            lines = [f"# Uncommitted Work in {project}/{branch}", ""]
            if pending is None:
                lines.extend(["*No commit separators found. Showing all entries.*", ""])
                pending = sections
            elif not pending:
                return f'No uncommitted work found in branch notes for "{branch}". All changes have been committed.'
            else:
                lines.extend([f"*Showing {len(pending)} entries since last commit*", ""])
            return "\n".join(lines + self._render_sections(pending))

        before = self._parse_day(before_date, "beforeDate")
        after = self._parse_day(after_date, "afterDate")
        kept = []
        for section in sections:
            if _is_commit_section(section):
                continue
            moment = parse_event_time(section.heading)
            if moment is None:
                kept.append(section)
                continue
            if before is not None and moment.date() > before.date():
                continue
            if after is not None and moment.date() < after.date():
                continue
            kept.append(section)

        if not kept:
            return "No branch notes found matching the filter criteria."
        title = f"# Branch Notes for {project}/{branch} ({after_date or 'start'} to {before_date or 'now'})"
        return "\n".join([title, ""] + self._render_sections(kept))

    def _archive_path(self, project: str, branch: str, archive_date: Optional[str]) -> Path:
        stamp = (archive_date or self._now().strftime("%Y-%m-%d")).replace("-", "")
        if not re.fullmatch(r"\d{8}", stamp):
            raise InvalidArgumentError(f"Invalid archiveDate '{archive_date}'. Expected YYYY-MM-DD")
        return self.store.resolve_path(ARCHIVE, project, branch, name=stamp)

    def archive_branch_note(
        self,
        project: Optional[str] = None,
        branch: Optional[str] = None,
        archive_date: Optional[str] = None,
    ) -> str:
        """Move a branch note into the project's archives directory."""
        project, branch = self._project(project), self._branch(branch)
        path = self.store.resolve_path(BRANCH_NOTE, project, branch)
        content = self.store.read_text(path)
        if content is None:
            raise ResourceNotFoundError(f'No branch note exists for branch "{branch}" in project "{project}".')
        archive_path = self._archive_path(project, branch, archive_date)
        self.store.write_text(archive_path, content)
        self.store.delete(path)
        logger.info("Archived %s to %s", path, archive_path)
        return f"Archived branch note {project}/{branch} to {archive_path}"

    def clear_branch_note(
        self,
        project: Optional[str] = None,
        branch: Optional[str] = None,
        create_archive: bool = True,
        keep_header: bool = True,
    ) -> str:
        project, branch = self._project(project), self._branch(branch)
        path = self.store.resolve_path(BRANCH_NOTE, project, branch)
        content = self.store.read_text(path)
        if content is None:
            return f'No branch note exists yet for branch "{branch}" in project "{project}".'
        if create_archive:
            self.store.write_text(self._archive_path(project, branch, None), content)
        self.store.write_text(path, branch_note_header(project, branch) if keep_header else "")
        suffix = " (archived first)" if create_archive else ""
        return f"Cleared branch note for {branch} in project {project}{suffix}"

    def list_all_branch_notes(self, current_project: Optional[str] = None, include_empty: bool = False) -> str:
        """Every branch note grouped by branch name, main and stage first."""
        groups: dict[str, list[tuple[str, Path]]] = {}
        project_counts: dict[str, int] = {}
        for project in self.store.list_projects(BRANCH_NOTE):
            project_counts[project] = 0
            for _, branch, path in self.store.branch_note_paths(project):
                if not include_empty:
                    try:
                        content = self.store.read_text(path) or ""
                    except OSError as e:
                        logger.warning("Cannot read %s: %s", path, e)
                        continue
                    if count_nonblank_lines(content) <= 1:
                        continue
                groups.setdefault(branch, []).append((project, path))
                project_counts[project] += 1

        total = sum(len(v) for v in groups.values())
        if total == 0:
            return "No branch notes found. Create some branch notes first using update_branch_note."

        def branch_key(name: str):
            if name in PRIORITY_BRANCHES:
                return (PRIORITY_BRANCHES.index(name), "")
            return (len(PRIORITY_BRANCHES), name)

        lines = [
            "# All Branch Notes",
            "",
            f"**Summary**: {total} branch notes across {len(groups)} branches in {len(project_counts)} projects",
            "",
            "**Projects**:",
        ]
        for project, count in sorted(project_counts.items()):
            marker = " (current)" if project == current_project else ""
            lines.append(f"- {project}: {count} branches{marker}")
        lines.extend(["", "---", ""])

        for branch in sorted(groups, key=branch_key):
            lines.extend([f"## Branch: {branch}", ""])
            for project, path in sorted(groups[branch]):
                marker = " (current)" if project == current_project else ""
                lines.append(f"- **{project}**{marker}")
                lines.append(f"  - Path: `{path}`")
            lines.append("")
        return "\n".join(lines)

    def generate_commit_message(
        self,
        project: Optional[str] = None,
        branch: Optional[str] = None,
        ticket: Optional[str] = None,
    ) -> str:
        """Draft a commit message from the entries since the last commit."""
        project, branch = self._project(project), self._branch(branch)
        content = self.store.read_text(self.store.resolve_path(BRANCH_NOTE, project, branch))
        sections = self._note_sections(content or "")
        if not sections:
            return "No branch note entries found. Please add an entry with update_branch_note first."

        pending = self._uncommitted_sections(sections)
        if pending is None:
            pending = sections[-1:]
        if not pending:
            return "No changes since last commit"

        summaries = [" ".join(_body_lines(s.body)) or s.heading for s in pending]
        message = summaries[-1]
        if len(summaries) > 1:
            message += "\n\n" + "\n".join(f"- {s}" for s in summaries)
        if ticket and ticket not in message:
            message = f"[{ticket}] {message}"
        return message

    def generate_jira_comment(
        self,
        ticket_id: str,
        project: Optional[str] = None,
        branch: Optional[str] = None,
        jira_base_url: Optional[str] = None,
    ) -> str:
        """Format branch note entries as a Jira wiki-markup comment."""
        project, branch = self._project(project), self._branch(branch)
        self._require(ticket_id, "ticketId")
        content = self.store.read_text(self.store.resolve_path(BRANCH_NOTE, project, branch))
        if content is None:
            raise ResourceNotFoundError(
                f'No branch note exists yet for branch "{branch}" in project "{project}". Cannot generate Jira comment.'
            )
        sections = self._note_sections(content)
        if not sections:
            raise ResourceNotFoundError("Branch note exists but has no entries. Cannot generate Jira comment.")

        lines = [f"*Updates from branch: {branch}*", ""]
        for section in sections:
            lines.append(f"h5. {section.heading}")
            lines.extend(_body_lines(section.body))
            lines.append("")
        if jira_base_url:
            url = f"{jira_base_url.rstrip('/')}/browse/{ticket_id}"
            lines.extend([f"[View ticket|{url}]", "", f"Ticket URL: {url}"])
        return "\n".join(lines)

    # ========== Context files ==========

    def update_context_file(
        self,
        title: str,
        description: str,
        project: Optional[str] = None,
        branch: Optional[str] = None,
        additional_info: Optional[str] = None,
        related_projects: Union[str, list[str], None] = None,
    ) -> str:
        project, branch = self._project(project), self._branch(branch)
        self._require(title, "title")
        self._require(description, "description")
        context = ContextFile(
            project=project,
            branch=branch,
            title=title,
            description=description,
            updated=self._now(),
            additional_info=additional_info,
            related_projects=_split_list(related_projects),
        )
        path = self.store.resolve_path(CONTEXT, project, branch)
        self.store.write_text(path, context.to_markdown())
        return f'Updated context file for "{title}" ({project}/{branch})'

    def read_context_file(
        self,
        project: Optional[str] = None,
        branch: Optional[str] = None,
        current_project: Optional[str] = None,
    ) -> str:
        project, branch = self._project(project), self._branch(branch)
        content = self.store.read_text(self.store.resolve_path(CONTEXT, project, branch))
        if content is None:
            return (
                f'No context file exists yet for branch "{branch}" in project "{project}". '
                "Use update_context_file to create one."
            )
        text = f"[Project: {project}]\n{content}"
        if current_project and current_project not in (project, "all"):
            text = (
                f'WARNING: You are reading a context file from project "{project}" '
                f'while working in project "{current_project}".\n\n' + text
            )
        return text

    def list_context_files(
        self,
        project: Optional[str] = None,
        list_all: bool = False,
        current_project: Optional[str] = None,
    ) -> str:
        projects = self.store.list_projects(CONTEXT) if list_all else [sanitize_name(self._project(project))]

        lines = ["# Available Context Files", ""]
        found = 0
        for proj in projects:
            files = self.store.list_documents(CONTEXT, proj, suffix=CONTEXT_SUFFIX)
            if not files:
                continue
            external = " (EXTERNAL PROJECT)" if current_project and current_project not in (proj, "all") else ""
            lines.extend([f"## Project: {proj}{external}", ""])
            for file_name in files:
                branch = file_name[:-len(CONTEXT_SUFFIX)]
                path = self.store.project_dir(CONTEXT, proj) / file_name
                try:
                    content = self.store.read_text(path) or ""
                except OSError as e:
                    logger.warning("Cannot read context file %s: %s", path, e)
                    content = ""
                match = _H1_RE.search(content)
                title = match.group(1) if match else branch
                lines.append(f"- Branch: {branch}, Title: {title}")
                found += 1
            lines.append("")

        if found == 0:
            scope = "" if list_all else f' for project "{self._project(project)}"'
            return f"No context files found{scope}."
        return "\n".join(lines)

    # ========== Tacit knowledge ==========

    def create_tacit_knowledge(
        self,
        title: str,
        problem_statement: str,
        approach: str,
        outcome: str,
        project: Optional[str] = None,
        author: Optional[str] = None,
        branch: Optional[str] = None,
        tags: Union[str, list[str], None] = None,
        environment: Optional[str] = None,
        constraints: Optional[str] = None,
        related_documentation: Optional[str] = None,
    ) -> str:
        project = self._project(project)
        for value, name in ((title, "title"), (problem_statement, "problemStatement"),
                            (approach, "approach"), (outcome, "outcome")):
            self._require(value, name)

        doc = TacitKnowledge(
            title=title,
            author=author or self.config.default_author,
            project=project,
            captured=self._now(),
            problem_statement=problem_statement,
            approach=approach,
            outcome=outcome,
            branch=branch,
            tags=_split_list(tags),
            environment=environment,
            constraints=constraints,
            related_documentation=related_documentation,
        )
        path = self.store.resolve_path(KNOWLEDGE, project, name=f"{doc.date}-{sanitize_name(title)}")
        self.store.write_text(path, doc.to_markdown())
        logger.info("Created knowledge document %s", path)
        return f"Created tacit knowledge document: {path}"

    @staticmethod
    def extract_tags(content: str) -> list[str]:
        match = _TAGS_RE.search(content)
        if not match:
            return []
        return [tag.lower() for tag in _split_list(match.group(1))]

    def _search_knowledge(self, projects: list[str], term: Optional[str], tags: list[str]) -> list[tuple[str, str, str, list[str]]]:
        results = []
        for proj in projects:
            for file_name in self.store.list_documents(KNOWLEDGE, proj):
                path = self.store.project_dir(KNOWLEDGE, proj) / file_name
                try:
                    content = self.store.read_text(path) or ""
                except OSError as e:
                    logger.warning("Cannot read knowledge document %s: %s", path, e)
                    continue
                if term and term.lower() not in content.lower():
                    continue
                doc_tags = self.extract_tags(content)
                if tags and not any(tag in doc_tags for tag in tags):
                    continue
                match = _TITLE_RE.search(content)
                title = match.group(1) if match else file_name[:-len(".md")]
                results.append((proj, file_name, title, doc_tags))
        return results

    def read_tacit_knowledge(
        self,
        project: Optional[str] = None,
        document_name: str = "list",
        search_term: Optional[str] = None,
        search_tags: Union[str, list[str], None] = None,
        cross_project: bool = True,
    ) -> str:
        """List, search or read knowledge documents."""
        project = self._project(project)
        tags = [t.lower() for t in _split_list(search_tags)]
        projects = self.store.list_projects(KNOWLEDGE) if cross_project else [sanitize_name(project)]

        if search_term or tags:
            results = self._search_knowledge(projects, search_term, tags)
            if not results:
                return "No knowledge documents found matching the search criteria."
            lines = ["# Knowledge Search Results", "", f"Found {len(results)} document(s) matching your criteria:", ""]
            for proj, file_name, title, doc_tags in results:
                tag_text = f" [Tags: {', '.join(doc_tags)}]" if doc_tags else ""
                lines.append(f"- **{title}** ({proj}/{file_name}){tag_text}")
            return "\n".join(lines)

        if document_name and document_name != "list":
            path = self.store.find_document(KNOWLEDGE, project, document_name)
            content = self.store.read_text(path)
            if content is None:
                raise ResourceNotFoundError(f"Knowledge document not found: {document_name} in project {project}.")
            return content

        listing = [(proj, self.store.list_documents(KNOWLEDGE, proj)) for proj in projects]
        listing = [(proj, docs) for proj, docs in listing if docs]
        if not listing:
            if cross_project:
                return "No knowledge documents found across all projects."
            return f"No knowledge documents found for project {project}."

        total = sum(len(docs) for _, docs in listing)
        lines = [
            "# Available Knowledge Documents",
            "",
            f"Found {total} document(s) across {len(listing)} project(s):",
            "",
        ]
        for proj, docs in listing:
            lines.extend([f"## Project: {proj}", ""])
            lines.extend(f"- {doc}" for doc in docs)
            lines.append("")
        return "\n".join(lines)

    # ========== Checklists ==========

    def create_completion_checklist(
        self,
        feature_name: str,
        objectives: str,
        requirements: str,
        project: Optional[str] = None,
        owner: Optional[str] = None,
        test_criteria: Optional[str] = None,
        knowledge_items: Optional[str] = None,
        ticket: Optional[str] = None,
    ) -> str:
        project = self._project(project)
        self._require(feature_name, "featureName")
        self._require(objectives, "objectives")
        self._require(requirements, "requirements")
        checklist = CompletionChecklist(
            project=project,
            feature=feature_name,
            owner=owner or self.config.default_author,
            created=self._now(),
            objectives=objectives,
            requirements=requirements,
            test_criteria=test_criteria,
            knowledge_items=knowledge_items,
            ticket=ticket,
        )
        path = self.store.resolve_path(
            CHECKLIST, project, name=f"{checklist.date}-{sanitize_name(feature_name)}"
        )
        self.store.write_text(path, checklist.to_markdown())
        return f"Created completion checklist: {path}"

    def _checklist_path(self, project: str, checklist_name: str) -> Path:
        self._require(checklist_name, "checklistName")
        return self.store.find_document(CHECKLIST, project, checklist_name)

    def _load_checklist(self, project: str, checklist_name: str) -> tuple[Path, str]:
        path = self._checklist_path(project, checklist_name)
        content = self.store.read_text(path)
        if content is None:
            raise ResourceNotFoundError(f"Checklist not found: {checklist_name} for project {project}.")
        return path, content

    def read_checklist(self, project: Optional[str] = None, checklist_name: str = "list") -> str:
        project = self._project(project)
        if not checklist_name or checklist_name == "list":
            checklists = self.store.list_documents(CHECKLIST, project, suffix=CHECKLIST_SUFFIX)
            if not checklists:
                return f"No checklists found for project {project}."
            return "\n".join([f"# Available Checklists for {project}", ""] + [f"- {c}" for c in checklists])
        _, content = self._load_checklist(project, checklist_name)
        return content

    @staticmethod
    def _find_item_line(lines: list[str], item_path: str) -> int:
        section, sep, number = item_path.rpartition(".")
        if not sep or not section or not number.isdigit() or int(number) < 1:
            raise InvalidArgumentError(
                f"Invalid item path: {item_path}. Format should be 'Section.Number' (e.g., 'Requirements.1')"
            )
        target = int(number) - 1
        in_section = False
        count = 0
        for index, line in enumerate(lines):
            if line.startswith("#"):
                in_section = section.lower() in line.lower()
                count = 0
                continue
            if in_section and _CHECKBOX_RE.match(line.strip()):
                if count == target:
                    return index
                count += 1
        raise InvalidArgumentError(f"Could not find item at path {item_path}")

    def _auto_update(self, lines: list[str], project: str, branch: str) -> list[str]:
        """Check off items whose topic shows up in the branch context or notes."""
        activity = ""
        for kind in (CONTEXT, BRANCH_NOTE):
            activity += (self.store.read_text(self.store.resolve_path(kind, project, branch)) or "").lower()

        updated = []
        for index, line in enumerate(lines):
            match = _CHECKBOX_RE.match(line.strip())
            if not match or match.group(1).lower() == "x":
                continue
            item = match.group(2).lower()
            for key, phrases in AUTO_UPDATE_PATTERNS.items():
                if not any(p in activity for p in phrases):
                    continue
                if key in item or any(p in item for p in phrases):
                    lines[index] = line.replace("- [ ]", "- [x]", 1)
                    updated.append(match.group(2).strip())
                    break
        return updated

    def update_checklist(
        self,
        checklist_name: str,
        project: Optional[str] = None,
        item_path: Optional[str] = None,
        status: Optional[bool] = None,
        auto_update: bool = False,
        branch: Optional[str] = None,
    ) -> str:
        """Tick or untick one item by path, or auto-update from branch activity."""
        project = self._project(project)
        path, content = self._load_checklist(project, checklist_name)
        lines = content.split("\n")

        if auto_update:
            updated = self._auto_update(lines, project, self._branch(branch))
            if updated:
                report = f"Auto-updated {len(updated)} items based on branch context and notes:\n" + \
                    "\n".join(f"- {u}" for u in updated)
            else:
                report = "No items were auto-updated. No matching activities found in branch context and notes."
        elif item_path and status is not None:
            index = self._find_item_line(lines, item_path)
            if status:
                lines[index] = lines[index].replace("- [ ]", "- [x]", 1)
            else:
                lines[index] = re.sub(r"- \[[xX]\]", "- [ ]", lines[index], count=1)
            updated = [item_path]
            report = f"Updated item at {item_path} to {'completed' if status else 'not completed'}"
        else:
            raise InvalidArgumentError("Must specify either autoUpdate=true or provide itemPath and status")

        if updated:
            self.store.write_text(path, "\n".join(lines))
            return f"Updated checklist: {path.name}\n\n{report}"
        return f"No updates made to checklist: {path.name}\n\n{report}"

    def sign_off_checklist(
        self,
        checklist_name: str,
        sign_off_item: str,
        signature_name: str,
        project: Optional[str] = None,
    ) -> str:
        project = self._project(project)
        label = SIGN_OFF_LABELS.get(sign_off_item)
        if label is None:
            raise InvalidArgumentError(
                f"Invalid sign-off item: {sign_off_item}. Valid options are: {', '.join(SIGN_OFF_LABELS)}"
            )
        self._require(signature_name, "signatureName")
        path, content = self._load_checklist(project, checklist_name)
        today = self._now().strftime("%Y-%m-%d")
        pattern = re.compile(rf"\*\*{re.escape(label)}:\*\* _+ Date: _+")
        updated, count = pattern.subn(f"**{label}:** {signature_name} Date: {today}", content, count=1)
        if count == 0:
            return f"{sign_off_item} is already signed off in checklist: {path.name}"
        self.store.write_text(path, updated)
        return f"Signed off {sign_off_item} for checklist: {path.name} by {signature_name} on {today}"

    # ========== Analyses ==========

    def load_branch_notes(self, project: Optional[str] = None, branch: Optional[str] = None) -> list[NoteDocument]:
        """Every branch note in scope; unreadable notes are logged and skipped."""
        documents = []
        for proj, br, path in self.store.branch_note_paths(project, branch):
            try:
                text = self.store.read_text(path)
            except OSError as e:
                logger.warning("Skipping unreadable branch note %s: %s", path, e)
                continue
            if text is None:
                continue
            documents.append(NoteDocument(proj, br, text, self.store.last_modified(path)))
        return documents

    def reconstruct_timeline(
        self,
        project: Optional[str] = None,
        branch: Optional[str] = None,
        date_range: Optional[str] = None,
        include_commits: bool = True,
        include_entries: bool = True,
    ) -> str:
        """Chronological events for one note, a project, a branch name, or everything."""
        try:
            parsed_range = parse_date_range(date_range)
        except ValueError as e:
            raise InvalidArgumentError(str(e)) from None

        kinds = {EventKind.MILESTONE, EventKind.PHASE}
        if include_commits:
            kinds.add(EventKind.COMMIT)
        if include_entries:
            kinds.add(EventKind.ENTRY)

        documents = self.load_branch_notes(project, branch)
        events = build_timeline(documents, date_range=parsed_range, kinds=kinds)

        if project and branch:
            scope = f"{project}/{branch}"
        elif project:
            scope = f"project {project}"
        elif branch:
            scope = f"branch {branch} (all projects)"
        else:
            scope = "all projects"
        return format_timeline(events, scope, parsed_range)

    def analyze_branch_notes(
        self,
        current_project: Optional[str] = None,
        include_analysis: bool = True,
        min_completeness_score: int = 0,
        detect_relationships_flag: bool = True,
    ) -> SurveyReport:
        analyses = []
        stats: dict[str, ProjectStats] = {}
        for doc in self.load_branch_notes():
            if count_nonblank_lines(doc.text) <= 1:
                continue
            if include_analysis:
                result = score(doc.text, self.config.production_terms, self.config.development_terms)
                completeness, readiness = result.completeness_score, result.production_readiness
            else:
                completeness, readiness = 0, None
            if completeness < min_completeness_score:
                continue
            relationships = set()
            if detect_relationships_flag:
                relationships = detect_relationships(doc.text, self.config.technology_keywords)

            analyses.append(DocumentAnalysis(
                project=doc.project,
                branch=doc.branch,
                completeness_score=completeness,
                production_readiness=readiness,
                relationships=relationships,
                entry_count=count_section_entries(doc.text),
                word_count=count_body_words(doc.text),
                has_commit_separators=has_commit_marker(doc.text),
                last_modified=doc.last_modified,
                is_current_project=doc.project == current_project,
            ))

            project_stats = stats.setdefault(doc.project, ProjectStats(project=doc.project))
            project_stats.branches += 1
            project_stats.total_completeness += completeness
            if readiness is Readiness.PRODUCTION:
                project_stats.production_ready += 1
            elif readiness is Readiness.DEVELOPMENT:
                project_stats.in_development += 1

        analyses.sort(key=lambda a: (-a.completeness_score, a.project, a.branch))
        return SurveyReport(
            analyses=analyses,
            project_stats=sorted(stats.values(), key=lambda s: (-s.average_score, s.project)),
            relationship_groups=aggregate_relationships(analyses) if detect_relationships_flag else [],
            current_project=current_project,
            include_analysis=include_analysis,
            detect_relationships=detect_relationships_flag,
        )

    def survey_branches(
        self,
        current_project: Optional[str] = None,
        include_analysis: bool = True,
        min_completeness_score: int = 0,
        detect_relationships: bool = True,
    ) -> str:
        if not self.store.list_projects(BRANCH_NOTE):
            return "No branch notes directory found. Create some branch notes first."
        report = self.analyze_branch_notes(
            current_project=current_project,
            include_analysis=include_analysis,
            min_completeness_score=min_completeness_score,
            detect_relationships_flag=detect_relationships,
        )
        return format_survey(report)

    def _project_context(self, project: str, branch: Optional[str]) -> Optional[ProjectContext]:
        """Context for the branch, else the main/master context, else the first."""
        if branch:
            text = self.store.read_text(self.store.resolve_path(CONTEXT, project, branch))
            return parse_context(text) if text is not None else None

        files = self.store.list_documents(CONTEXT, project, suffix=CONTEXT_SUFFIX)
        if not files:
            return None
        preferred = [f for f in files if "main" in f or "master" in f]
        chosen = (preferred or files)[0]
        text = self.store.read_text(self.store.project_dir(CONTEXT, project) / chosen)
        return parse_context(text) if text is not None else None

    def _knowledge_texts(self, project: str) -> list[str]:
        texts = []
        for file_name in self.store.list_documents(KNOWLEDGE, project):
            path = self.store.project_dir(KNOWLEDGE, project) / file_name
            try:
                text = self.store.read_text(path)
            except OSError as e:
                logger.warning("Skipping unreadable knowledge document %s: %s", path, e)
                continue
            if text is not None:
                texts.append(text)
        return texts

    def construct_narrative(
        self,
        project: str,
        branch: Optional[str] = None,
        include_knowledge: bool = True,
        include_context: bool = True,
        narrative_type: str = "full",
    ) -> str:
        """Narrative from one branch note, or every branch of the project."""
        self._require(project, "projectName")
        if narrative_type not in NARRATIVE_TYPES:
            raise InvalidArgumentError(
                f"Invalid narrativeType '{narrative_type}'. Valid options are: {', '.join(NARRATIVE_TYPES)}"
            )

        notes = self.load_branch_notes(project, branch)
        knowledge = self._knowledge_texts(project) if include_knowledge else []
        if not notes and not knowledge:
            scope = f"{project}/{branch}" if branch else project
            return f"No branch notes or knowledge documents found for {scope}."

        context = self._project_context(project, branch) if include_context else None
        narrative = compose_narrative(
            notes,
            knowledge,
            context=context,
            project=project,
            branch=branch,
            narrative_type=narrative_type,
            production_terms=self.config.production_terms,
            development_terms=self.config.development_terms,
        )
        return format_narrative(narrative)

    def analyze_documentation_gaps(
        self,
        folder_path: str,
        project: Optional[str] = None,
        include_tests: Optional[bool] = None,
        include_node_modules: Optional[bool] = None,
        max_depth: Optional[int] = None,
        file_extensions: Union[str, list[str], None] = None,
        create_checklist: bool = False,
    ) -> str:
        """Scan a folder and report documentation gaps, optionally as a checklist."""
        self._require(folder_path, "folderPath")
        project = self._project(project)
        defaults = self.config.gap_analysis
        if max_depth is not None and int(max_depth) < 0:
            raise InvalidArgumentError("maxDepth must be zero or greater")

        options = GapOptions(
            include_tests=defaults.include_tests if include_tests is None else include_tests,
            include_node_modules=defaults.include_node_modules if include_node_modules is None else include_node_modules,
            max_depth=defaults.max_depth if max_depth is None else int(max_depth),
            file_extensions=_split_list(file_extensions) or list(defaults.file_extensions),
        )
        root = Path(folder_path).expanduser()
        analysis = DocumentationGapAnalyzer(options).analyze(root, project=project)

        if create_checklist:
            today = self._now().strftime("%Y-%m-%d")
            path = self.store.resolve_path(CHECKLIST, project, name=f"{today}-documentation-gaps")
            self.store.write_text(path, analysis.to_checklist_markdown(today))
            analysis.checklist_path = str(path)
        return format_gap_report(analysis)
