"""
LifeOS Assistant — Tool Catalog.

The authoritative list of operations the model may request, in OpenAI
function-calling format. Adding a capability means adding one entry here
and one handler in src.core.handlers.dispatch; the two stay in
lockstep (enforced by tests).
"""

from __future__ import annotations

CATALOG_VERSION = "2"

# Model may call zero, one, or many tools per turn
TOOL_CHOICE = "auto"

_DATE = "Date in YYYY-MM-DD format"


def _tool(name: str, description: str, properties: dict, required: list[str] | None = None) -> dict:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required if required is not None else ["action"],
            },
        },
    }


def _actions(*names: str) -> dict:
    return {"type": "string", "enum": list(names)}


TOOLS: list[dict] = [
    _tool(
        "manage_tasks",
        "Create, update, delete, list, or complete tasks. To attach a task to a "
        "project, pass a project_id obtained from search_project or manage_projects.",
        {
            "action": _actions("create", "update", "delete", "list", "complete"),
            "task_id": {"type": "string", "description": "Task ID (required for update, delete, complete)"},
            "title": {"type": "string", "description": "Task title (required for create)"},
            "description": {"type": "string", "description": "Task description"},
            "status": {"type": "string", "enum": ["todo", "in-progress", "completed"]},
            "priority": {"type": "string", "enum": ["low", "medium", "high"]},
            "due_date": {"type": "string", "description": f"Due date. {_DATE}"},
            "project_id": {"type": "string", "description": "ID of an existing project to link the task to"},
            "parent_task_id": {"type": "string", "description": "ID of the parent task when creating a subtask"},
            "estimated_time": {"type": "number", "description": "Estimated time in minutes"},
        },
    ),
    _tool(
        "manage_projects",
        "Create, update, delete, or list projects. The create result includes "
        "the new project ID for linking tasks in the same turn.",
        {
            "action": _actions("create", "update", "delete", "list"),
            "project_id": {"type": "string", "description": "Project ID (required for update, delete)"},
            "title": {"type": "string", "description": "Project title (required for create)"},
            "description": {"type": "string", "description": "Project description"},
            "status": {"type": "string", "enum": ["new", "in-progress", "completed", "on-hold", "cancelled"]},
            "priority": {"type": "string", "enum": ["low", "medium", "high"]},
            "due_date": {"type": "string", "description": f"Due date. {_DATE}"},
            "budget": {"type": "number", "description": "Project budget"},
            "category": {"type": "string", "description": "Project category (default: General)"},
        },
    ),
    _tool(
        "manage_notes",
        "Create, update, delete, or list notes",
        {
            "action": _actions("create", "update", "delete", "list"),
            "note_id": {"type": "string", "description": "Note ID (required for update, delete)"},
            "title": {"type": "string", "description": "Note title (required for create)"},
            "content": {"type": "string", "description": "Note content"},
            "folder": {"type": "string", "description": "Folder name (default: General)"},
            "is_pinned": {"type": "boolean", "description": "Whether to pin the note"},
        },
    ),
    _tool(
        "manage_habits",
        "Create, update, delete, list habits, or toggle habit completion for today",
        {
            "action": _actions("create", "update", "delete", "list", "toggle_today"),
            "habit_id": {"type": "string", "description": "Habit ID (required for update, delete, toggle_today)"},
            "name": {"type": "string", "description": "Habit name (required for create)"},
            "description": {"type": "string", "description": "Habit description"},
            "frequency": {"type": "string", "enum": ["daily", "weekly", "monthly"]},
            "color": {"type": "string", "description": "Habit color (hex code)"},
            "icon": {"type": "string", "description": "Habit icon (emoji)"},
        },
    ),
    _tool(
        "manage_transactions",
        "Create, update, delete, or list financial transactions (income and expenses)",
        {
            "action": _actions("create", "update", "delete", "list"),
            "transaction_id": {"type": "string", "description": "Transaction ID (required for update, delete)"},
            "type": {"type": "string", "enum": ["income", "expense"]},
            "amount": {"type": "number", "description": "Transaction amount (positive)"},
            "category": {"type": "string", "description": "Transaction category"},
            "description": {"type": "string", "description": "Transaction description"},
            "date": {"type": "string", "description": f"Transaction date (default: today). {_DATE}"},
            "currency": {"type": "string", "description": "Currency code (default: USD)"},
            "project_id": {"type": "string", "description": "ID of an existing project the transaction belongs to"},
        },
    ),
    _tool(
        "manage_courses",
        "Create, update, delete, or list learning courses. The create result "
        "includes the new course ID; use it right away with manage_lessons to "
        "add the course's lessons in the same turn. Deleting a course deletes its lessons.",
        {
            "action": _actions("create", "update", "delete", "list"),
            "course_id": {"type": "string", "description": "Course ID (required for update, delete)"},
            "title": {"type": "string", "description": "Course title (required for create)"},
            "platform": {"type": "string", "description": "Platform name (e.g., Udemy, Coursera)"},
            "instructor": {"type": "string", "description": "Instructor name"},
            "status": {"type": "string", "enum": ["not-started", "in-progress", "completed"]},
            "notes": {"type": "string", "description": "Course notes"},
            "target_date": {"type": "string", "description": f"Target completion date. {_DATE}"},
        },
    ),
    _tool(
        "manage_lessons",
        "Create, update, delete, list, or complete lessons within a course. "
        "course_id must be a real course ID from manage_courses or search_course.",
        {
            "action": _actions("create", "update", "delete", "list", "complete"),
            "lesson_id": {"type": "string", "description": "Lesson ID (required for update, delete, complete)"},
            "course_id": {"type": "string", "description": "Course ID (required for create, list)"},
            "title": {"type": "string", "description": "Lesson title (required for create)"},
            "description": {"type": "string", "description": "Lesson description"},
            "duration_minutes": {"type": "number", "description": "Duration in minutes"},
            "section": {"type": "string", "description": "Section or chapter label used to group lessons"},
            "is_completed": {"type": "boolean", "description": "Completion flag (update only)"},
        },
    ),
    _tool(
        "manage_movies_series",
        "Create, update, delete, or list movies and series to watch",
        {
            "action": _actions("create", "update", "delete", "list"),
            "item_id": {"type": "string", "description": "Item ID (required for update, delete)"},
            "name": {"type": "string", "description": "Movie or series name (required for create)"},
            "type": {"type": "string", "enum": ["movie", "series"]},
            "status": {"type": "string", "enum": ["to-watch", "watching", "watched", "completed"]},
            "description": {"type": "string", "description": "Description or notes"},
        },
    ),
    _tool(
        "manage_books_podcasts",
        "Create, update, delete, or list books and podcasts",
        {
            "action": _actions("create", "update", "delete", "list"),
            "item_id": {"type": "string", "description": "Item ID (required for update, delete)"},
            "name": {"type": "string", "description": "Book or podcast name (required for create)"},
            "type": {"type": "string", "enum": ["book", "podcast"]},
            "status": {"type": "string", "enum": ["to-consume", "consuming", "consumed"]},
            "url": {"type": "string", "description": "URL link"},
        },
    ),
    _tool(
        "manage_clients",
        "Create, update, delete, or list clients",
        {
            "action": _actions("create", "update", "delete", "list"),
            "client_id": {"type": "string", "description": "Client ID (required for update, delete)"},
            "name": {"type": "string", "description": "Client name (required for create)"},
            "email": {"type": "string", "description": "Client email"},
            "phone": {"type": "string", "description": "Client phone"},
            "company": {"type": "string", "description": "Company name"},
            "status": {"type": "string", "enum": ["lead", "active", "inactive", "past", "partner"]},
            "notes": {"type": "string", "description": "Notes about the client"},
        },
    ),
    _tool(
        "manage_focus_sessions",
        "Start or stop a focus/break timer, show the running session, or list "
        "recent sessions. Only one session can run at a time.",
        {
            "action": _actions("start", "stop", "current", "list"),
            "task_id": {"type": "string", "description": "Optional ID of the task being worked on (start)"},
            "session_type": {"type": "string", "enum": ["focus", "break"]},
        },
    ),
    _tool(
        "get_summary",
        "Get a summary of tasks, projects, habits, or transactions for today/this week/this month",
        {
            "type": {"type": "string", "enum": ["tasks", "projects", "habits", "transactions", "all"]},
            "period": {"type": "string", "enum": ["today", "week", "month"]},
        },
        required=["type"],
    ),
    _tool(
        "get_schedule",
        "List what is due in a date window: open tasks, active projects and "
        "courses with a due or target date, grouped by day",
        {
            "start_date": {"type": "string", "description": f"First day of the window (default: today). {_DATE}"},
            "days": {"type": "integer", "description": "Window length in days (default 7, max 31)"},
        },
        required=[],
    ),
    _tool(
        "search_project",
        "Find projects by (partial) title and return their IDs. Use this before "
        "linking a task or transaction to a project the user names.",
        {"query": {"type": "string", "description": "Project name or part of it"}},
        required=["query"],
    ),
    _tool(
        "search_course",
        "Find courses by (partial) title and return their IDs. Use this before "
        "adding or listing lessons for a course the user names.",
        {"query": {"type": "string", "description": "Course name or part of it"}},
        required=["query"],
    ),
]


def tool_names() -> list[str]:
    """Names of every tool in catalog order."""
    return [t["function"]["name"] for t in TOOLS]
