"""MCP tool definitions wrapping the cortex engine."""

from __future__ import annotations

import logging
from typing import Any, Optional

import portalocker

from .engine import (
    CortexEngine,
    CortexError,
    InvalidArgumentError,
    MissingArgumentError,
    ResourceNotFoundError,
)

logger = logging.getLogger(__name__)


def _string(description: str) -> dict[str, str]:
    return {"type": "string", "description": description}


def _boolean(description: str, default: bool) -> dict[str, Any]:
    return {"type": "boolean", "description": description, "default": default}


PROJECT_NAME = _string("Project name (defaults to the configured project)")
BRANCH_NAME = _string("Branch name (defaults to the configured branch)")


def make_tools(engine: CortexEngine) -> dict[str, dict]:
    """Create MCP tool definitions for the cortex engine.

    Returns:
        Dict mapping tool names to their definitions.
    """

    tools = {}

    # ========== timeline_reconstruction ==========
    tools["timeline_reconstruction"] = {
        "name": "timeline_reconstruction",
        "description": "Reconstruct a chronological timeline of commits, entries, milestones and phases from branch notes.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "projectName": _string("Limit to one project (all projects when omitted)"),
                "branchName": _string("Limit to one branch name (all branches when omitted)"),
                "dateRange": _string("Inclusive range 'YYYY-MM-DD' or 'YYYY-MM-DD,YYYY-MM-DD'"),
                "includeCommits": _boolean("Include commit separators", True),
                "includeEntries": _boolean("Include timestamped entries", True),
            },
        },
    }

    # ========== enhanced_branch_survey ==========
    tools["enhanced_branch_survey"] = {
        "name": "enhanced_branch_survey",
        "description": "Survey every branch note with completeness scores, production readiness and cross-branch relationships.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "currentProject": _string("Project to mark as current in the report"),
                "includeAnalysis": _boolean("Compute completeness and readiness", True),
                "minCompletenessScore": {
                    "type": "integer",
                    "description": "Hide branches scoring below this value (0-100)",
                    "default": 0,
                },
                "detectRelationships": _boolean("Detect shared tickets and keywords", True),
            },
        },
    }

    # ========== construct_project_narrative ==========
    tools["construct_project_narrative"] = {
        "name": "construct_project_narrative",
        "description": "Compose a project narrative from branch notes, knowledge documents and context files.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "projectName": _string("Project to narrate"),
                "branchName": _string("Single branch (every branch of the project when omitted)"),
                "includeKnowledge": _boolean("Read the project's knowledge documents", True),
                "includeContext": _boolean("Read the project's context file", True),
                "narrativeType": {
                    "type": "string",
                    "enum": ["full", "technical", "executive"],
                    "description": "Level of detail",
                    "default": "full",
                },
            },
            "required": ["projectName"],
        },
    }

    # ========== analyze_documentation_gaps ==========
    tools["analyze_documentation_gaps"] = {
        "name": "analyze_documentation_gaps",
        "description": "Scan a source folder and recommend documentation work by priority, optionally as a checklist.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "folderPath": _string("Folder to analyze"),
                "projectName": _string("Project the checklist is filed under"),
                "includeTests": _boolean("Include test files and directories", False),
                "includeNodeModules": _boolean("Descend into node_modules", False),
                "maxDepth": {"type": "integer", "description": "Maximum directory depth", "default": 5},
                "fileExtensions": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "File extensions to include (e.g. ['.py', '.md'])",
                },
                "createChecklist": _boolean("Save the recommendations as a completion checklist", False),
            },
            "required": ["folderPath", "projectName"],
        },
    }

    # ========== update_branch_note ==========
    tools["update_branch_note"] = {
        "name": "update_branch_note",
        "description": "Append a timestamped entry to a branch note, creating it if needed.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "projectName": PROJECT_NAME,
                "branchName": BRANCH_NAME,
                "message": _string("Entry text"),
            },
            "required": ["message"],
        },
    }

    # ========== add_commit_separator ==========
    tools["add_commit_separator"] = {
        "name": "add_commit_separator",
        "description": "Mark a commit boundary in a branch note.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "projectName": PROJECT_NAME,
                "branchName": BRANCH_NAME,
                "commitHash": _string("Full commit hash"),
                "commitMessage": _string("Commit message"),
            },
            "required": ["commitHash", "commitMessage"],
        },
    }

    # ========== read_branch_note ==========
    tools["read_branch_note"] = {
        "name": "read_branch_note",
        "description": "Read a branch note in full.",
        "inputSchema": {
            "type": "object",
            "properties": {"projectName": PROJECT_NAME, "branchName": BRANCH_NAME},
        },
    }

    # ========== filter_branch_note ==========
    tools["filter_branch_note"] = {
        "name": "filter_branch_note",
        "description": "Show uncommitted work, the entries of one commit, or entries within a date window.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "projectName": PROJECT_NAME,
                "branchName": BRANCH_NAME,
                "commitHash": _string("Show the entries recorded for this commit"),
                "beforeDate": _string("Keep entries on or before YYYY-MM-DD"),
                "afterDate": _string("Keep entries on or after YYYY-MM-DD"),
                "uncommittedOnly": _boolean("Show only entries after the last commit", True),
            },
        },
    }

    # ========== archive_branch_note ==========
    tools["archive_branch_note"] = {
        "name": "archive_branch_note",
        "description": "Move a branch note into the project's archives.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "projectName": PROJECT_NAME,
                "branchName": BRANCH_NAME,
                "archiveDate": _string("Archive date YYYY-MM-DD (today when omitted)"),
            },
        },
    }

    # ========== clear_branch_note ==========
    tools["clear_branch_note"] = {
        "name": "clear_branch_note",
        "description": "Empty a branch note, archiving it first by default.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "projectName": PROJECT_NAME,
                "branchName": BRANCH_NAME,
                "createArchive": _boolean("Archive before clearing", True),
                "keepHeader": _boolean("Keep the branch note header", True),
            },
        },
    }

    # ========== list_all_branch_notes ==========
    tools["list_all_branch_notes"] = {
        "name": "list_all_branch_notes",
        "description": "List every branch note grouped by branch, main and stage first.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "currentProject": _string("Project to mark as current"),
                "includeEmpty": _boolean("Include notes holding only a header", False),
            },
        },
    }

    # ========== generate_commit_message ==========
    tools["generate_commit_message"] = {
        "name": "generate_commit_message",
        "description": "Draft a commit message from the branch note entries since the last commit.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "projectName": PROJECT_NAME,
                "branchName": BRANCH_NAME,
                "ticket": _string("Ticket id to prefix, e.g. PROJ-123"),
            },
        },
    }

    # ========== generate_jira_comment ==========
    tools["generate_jira_comment"] = {
        "name": "generate_jira_comment",
        "description": "Format branch note entries as a Jira comment.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "projectName": PROJECT_NAME,
                "branchName": BRANCH_NAME,
                "ticketId": _string("Jira ticket id"),
                "jiraBaseUrl": _string("Jira base URL for the ticket link"),
            },
            "required": ["ticketId"],
        },
    }

    # ========== update_context_file ==========
    tools["update_context_file"] = {
        "name": "update_context_file",
        "description": "Write the context file describing what a branch is for.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "projectName": PROJECT_NAME,
                "branchName": BRANCH_NAME,
                "title": _string("Title of the work"),
                "description": _string("What the branch does and why"),
                "additionalInfo": _string("Extra notes"),
                "relatedProjects": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Related project names",
                },
            },
            "required": ["title", "description"],
        },
    }

    # ========== read_context_file ==========
    tools["read_context_file"] = {
        "name": "read_context_file",
        "description": "Read a branch's context file, warning when it belongs to another project.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "projectName": PROJECT_NAME,
                "branchName": BRANCH_NAME,
                "currentProject": _string("Project you are working in"),
            },
        },
    }

    # ========== list_context_files ==========
    tools["list_context_files"] = {
        "name": "list_context_files",
        "description": "List context files for one project or all projects.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "projectName": PROJECT_NAME,
                "listAll": _boolean("List every project", False),
                "currentProject": _string("Project you are working in"),
            },
        },
    }

    # ========== create_tacit_knowledge ==========
    tools["create_tacit_knowledge"] = {
        "name": "create_tacit_knowledge",
        "description": "Capture tacit knowledge as a structured problem, approach and outcome document.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "projectName": PROJECT_NAME,
                "branchName": _string("Branch the knowledge came from"),
                "title": _string("Document title"),
                "author": _string("Author name"),
                "problemStatement": _string("The problem being solved"),
                "approach": _string("How it was approached"),
                "outcome": _string("What happened"),
                "tags": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Tags for search",
                },
                "environment": _string("Environment or conditions"),
                "constraints": _string("Constraints"),
                "relatedDocumentation": _string("Related documentation"),
            },
            "required": ["title", "problemStatement", "approach", "outcome"],
        },
    }

    # ========== read_tacit_knowledge ==========
    tools["read_tacit_knowledge"] = {
        "name": "read_tacit_knowledge",
        "description": "List, search or read tacit knowledge documents.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "projectName": PROJECT_NAME,
                "documentName": _string("Document name or 'list'"),
                "searchTerm": _string("Text to search for"),
                "searchTags": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Match documents carrying any of these tags",
                },
                "crossProject": _boolean("Search every project", True),
            },
        },
    }

    # ========== create_completion_checklist ==========
    tools["create_completion_checklist"] = {
        "name": "create_completion_checklist",
        "description": "Create a completion checklist with objectives, requirements and sign-off lines.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "projectName": PROJECT_NAME,
                "featureName": _string("Feature or module name"),
                "owner": _string("Owner name"),
                "objectives": _string("One objective per line"),
                "requirements": _string("One requirement per line"),
                "testCriteria": _string("One test criterion per line"),
                "knowledgeItems": _string("One knowledge item per line"),
                "ticket": _string("Jira ticket id"),
            },
            "required": ["featureName", "objectives", "requirements"],
        },
    }

    # ========== read_checklist ==========
    tools["read_checklist"] = {
        "name": "read_checklist",
        "description": "Read a checklist or list a project's checklists.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "projectName": PROJECT_NAME,
                "checklistName": _string("Checklist name or 'list'"),
            },
        },
    }

    # ========== update_checklist ==========
    tools["update_checklist"] = {
        "name": "update_checklist",
        "description": "Tick a checklist item by path, or auto-update items from branch context and notes.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "projectName": PROJECT_NAME,
                "branchName": _string("Branch used for auto-update"),
                "checklistName": _string("Checklist name"),
                "itemPath": _string("Item path 'Section.Number', e.g. 'Requirements.1'"),
                "status": {"type": "boolean", "description": "True to complete, false to reopen"},
                "autoUpdate": _boolean("Tick items matched by branch activity", False),
            },
            "required": ["checklistName"],
        },
    }

    # ========== sign_off_checklist ==========
    tools["sign_off_checklist"] = {
        "name": "sign_off_checklist",
        "description": "Sign off a checklist stage.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "projectName": PROJECT_NAME,
                "checklistName": _string("Checklist name"),
                "signOffItem": {
                    "type": "string",
                    "enum": ["Implementation", "Testing", "Knowledge", "Approval"],
                    "description": "Stage being signed off",
                },
                "signatureName": _string("Name of the person signing"),
            },
            "required": ["checklistName", "signOffItem", "signatureName"],
        },
    }

    return tools


def _required(arguments: dict[str, Any], key: str) -> Any:
    if key not in arguments:
        raise MissingArgumentError(f"Missing required argument {key!r}")
    return arguments[key]


def _dispatch(engine: CortexEngine, name: str, arguments: dict[str, Any]) -> str:
    project = arguments.get("projectName")
    branch = arguments.get("branchName")

    if name == "timeline_reconstruction":
        return engine.reconstruct_timeline(
            project=project,
            branch=branch,
            date_range=arguments.get("dateRange"),
            include_commits=arguments.get("includeCommits", True),
            include_entries=arguments.get("includeEntries", True),
        )

    elif name == "enhanced_branch_survey":
        return engine.survey_branches(
            current_project=arguments.get("currentProject"),
            include_analysis=arguments.get("includeAnalysis", True),
            min_completeness_score=arguments.get("minCompletenessScore", 0),
            detect_relationships=arguments.get("detectRelationships", True),
        )

    elif name == "construct_project_narrative":
        return engine.construct_narrative(
            project=_required(arguments, "projectName"),
            branch=branch,
            include_knowledge=arguments.get("includeKnowledge", True),
            include_context=arguments.get("includeContext", True),
            narrative_type=arguments.get("narrativeType", "full"),
        )

    elif name == "analyze_documentation_gaps":
        return engine.analyze_documentation_gaps(
            folder_path=_required(arguments, "folderPath"),
            project=_required(arguments, "projectName"),
            include_tests=arguments.get("includeTests"),
            include_node_modules=arguments.get("includeNodeModules"),
            max_depth=arguments.get("maxDepth"),
            file_extensions=arguments.get("fileExtensions"),
            create_checklist=arguments.get("createChecklist", False),
        )

    elif name == "update_branch_note":
        return engine.update_branch_note(_required(arguments, "message"), project=project, branch=branch)

    elif name == "add_commit_separator":
        return engine.add_commit_separator(
            commit_hash=_required(arguments, "commitHash"),
            commit_message=_required(arguments, "commitMessage"),
            project=project,
            branch=branch,
        )

    elif name == "read_branch_note":
        return engine.read_branch_note(project=project, branch=branch)

    elif name == "filter_branch_note":
        return engine.filter_branch_note(
            project=project,
            branch=branch,
            commit_hash=arguments.get("commitHash"),
            before_date=arguments.get("beforeDate"),
            after_date=arguments.get("afterDate"),
            uncommitted_only=arguments.get("uncommittedOnly", True),
        )

    elif name == "archive_branch_note":
        return engine.archive_branch_note(project=project, branch=branch, archive_date=arguments.get("archiveDate"))

    elif name == "clear_branch_note":
        return engine.clear_branch_note(
            project=project,
            branch=branch,
            create_archive=arguments.get("createArchive", True),
            keep_header=arguments.get("keepHeader", True),
        )

    elif name == "list_all_branch_notes":
        return engine.list_all_branch_notes(
            current_project=arguments.get("currentProject"),
            include_empty=arguments.get("includeEmpty", False),
        )

    elif name == "generate_commit_message":
        return engine.generate_commit_message(project=project, branch=branch, ticket=arguments.get("ticket"))

    elif name == "generate_jira_comment":
        return engine.generate_jira_comment(
            ticket_id=_required(arguments, "ticketId"),
            project=project,
            branch=branch,
            jira_base_url=arguments.get("jiraBaseUrl"),
        )

    elif name == "update_context_file":
        return engine.update_context_file(
            title=_required(arguments, "title"),
            description=_required(arguments, "description"),
            project=project,
            branch=branch,
            additional_info=arguments.get("additionalInfo"),
            related_projects=arguments.get("relatedProjects"),
        )

    elif name == "read_context_file":
        return engine.read_context_file(
            project=project,
            branch=branch,
            current_project=arguments.get("currentProject"),
        )

    elif name == "list_context_files":
        return engine.list_context_files(
            project=project,
            list_all=arguments.get("listAll", False),
            current_project=arguments.get("currentProject"),
        )

    elif name == "create_tacit_knowledge":
        return engine.create_tacit_knowledge(
            title=_required(arguments, "title"),
            problem_statement=_required(arguments, "problemStatement"),
            approach=_required(arguments, "approach"),
            outcome=_required(arguments, "outcome"),
            project=project,
            author=arguments.get("author"),
            branch=branch,
            tags=arguments.get("tags"),
            environment=arguments.get("environment"),
            constraints=arguments.get("constraints"),
            related_documentation=arguments.get("relatedDocumentation"),
        )

    elif name == "read_tacit_knowledge":
        return engine.read_tacit_knowledge(
            project=project,
            document_name=arguments.get("documentName", "list"),
            search_term=arguments.get("searchTerm"),
            search_tags=arguments.get("searchTags"),
            cross_project=arguments.get("crossProject", True),
        )

    elif name == "create_completion_checklist":
        return engine.create_completion_checklist(
            feature_name=_required(arguments, "featureName"),
            objectives=_required(arguments, "objectives"),
            requirements=_required(arguments, "requirements"),
            project=project,
            owner=arguments.get("owner"),
            test_criteria=arguments.get("testCriteria"),
            knowledge_items=arguments.get("knowledgeItems"),
            ticket=arguments.get("ticket"),
        )

    elif name == "read_checklist":
        return engine.read_checklist(project=project, checklist_name=arguments.get("checklistName", "list"))

    elif name == "update_checklist":
        return engine.update_checklist(
            checklist_name=_required(arguments, "checklistName"),
            project=project,
            item_path=arguments.get("itemPath"),
            status=arguments.get("status"),
            auto_update=arguments.get("autoUpdate", False),
            branch=branch,
        )

    elif name == "sign_off_checklist":
        return engine.sign_off_checklist(
            checklist_name=_required(arguments, "checklistName"),
            sign_off_item=_required(arguments, "signOffItem"),
            signature_name=_required(arguments, "signatureName"),
            project=project,
        )

    raise InvalidArgumentError(f"Unknown tool: {name}")


def _failure(error: str, error_type: str, suggestion: Optional[str] = None) -> dict[str, Any]:
    result = {
        "success": False,
        "error": error,
        "error_type": error_type,
        "text": f"Error: {error}",
    }
    if suggestion:
        result["suggestion"] = suggestion
        result["text"] += f"\n{suggestion}"
    return result


async def execute_tool(engine: CortexEngine, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    """Execute a cortex tool and return the result.

    Args:
        engine: CortexEngine instance
        name: Tool name
        arguments: Tool arguments (camelCase keys)

    Returns:
        Result dict with success status and the text block or error
    """
    arguments = arguments or {}
    try:
        return {"success": True, "text": _dispatch(engine, name, arguments)}

    except MissingArgumentError as e:
        return _failure(
            f"{e} for {name}",
            "missing_argument",
            "Check the tool's input schema for required arguments.",
        )

    except ResourceNotFoundError as e:
        return _failure(str(e), "resource_not_found", "Create the document first or check the name.")

    except InvalidArgumentError as e:
        return _failure(str(e), "invalid_argument")

    except portalocker.LockException as e:
        logger.warning("Lock timeout in %s: %s", name, e)
        return _failure(str(e) or "Could not acquire file lock", "lock_timeout", "Another process holds the document; retry.")

    except CortexError as e:
        return _failure(str(e), "cortex_error")

    except OSError as e:
        logger.error("I/O failure in %s: %s", name, e)
        return _failure(str(e), "io_error")

    except Exception as e:
        logger.exception("Unexpected failure in %s", name)
        return _failure(str(e), "unexpected_error")
