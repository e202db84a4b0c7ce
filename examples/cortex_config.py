"""MCP Cortex Configuration - Advanced Python Example

Copy to your storage root as cortex_config.py for full extensibility.

Convention:
- CONFIG dict for static configuration (same structure as TOML)
- Functions named custom_tool_* become MCP tools
"""

# =============================================================================
# Static Configuration (same structure as TOML)
# =============================================================================

CONFIG = {
    "directories": {
        "branch_notes": "branch_notes",
        "context": "context",
        "knowledge": "knowledge",
        "checklists": "checklists",
    },
    "defaults": {
        "project": "data-platform",
        "branch": "main",
        "author": "platform-team",
        "lock_timeout": 5,
    },
    "gap_analysis": {
        "max_depth": 4,
        "include_tests": False,
        "file_extensions": [".py", ".sql", ".md", ".toml"],
    },
    "vocabulary": {
        "technology": ["python", "sql", "databricks", "airflow", "docker", "git"],
    },
}


# =============================================================================
# Custom Tools - Exposed as additional MCP tools
# =============================================================================

def custom_tool_ticket_branches(engine, params) -> dict:
    """List the branches whose notes mention a ticket.

    Uses the survey's relationship detection, so tickets follow the
    ABC-123 shape.
    """
    ticket = params.get("ticket")
    if not ticket:
        return {"success": False, "error": "ticket is required"}

    report = engine.analyze_branch_notes()
    for group in report.relationship_groups:
        if group.value == ticket:
            return {
                "success": True,
                "ticket": ticket,
                "branches": [f"{project}/{branch}" for project, branch in group.locations],
            }
    return {"success": True, "ticket": ticket, "branches": []}


def custom_tool_readiness_summary(engine, params) -> dict:
    """Count branches by production readiness for one project."""
    project = params.get("project")
    report = engine.analyze_branch_notes(current_project=project)

    counts = {}
    for analysis in report.analyses:
        if project and analysis.project != project:
            continue
        label = analysis.production_readiness.value if analysis.production_readiness else "Unscored"
        counts[label] = counts.get(label, 0) + 1

    return {"success": True, "project": project or "all", "readiness": counts}


async def custom_tool_async_example(engine, params) -> dict:
    """Example async custom tool.

    Custom tools can be async if needed for I/O operations.
    """
    import asyncio
    await asyncio.sleep(0.1)  # Simulate async operation
    return {"success": True, "message": "Async tool completed"}
