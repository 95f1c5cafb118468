"""
Taskboard Entry Point.

Bootstraps the dependency graph via constructor injection, resolves the
signed-in profile from the persisted Supabase session and prints the
task list for the requested filter.  Every subsystem is wired here; no
module-level globals.

Usage::

    python main.py [all|assigned|created]
"""

from __future__ import annotations

import sys
from typing import Optional

from taskboard.config import get_config
from taskboard.database import DatabaseManager
from taskboard.logger import StructuredLogger, get_logger
from taskboard.models.enums import TaskFilter, TaskListStatus
from taskboard.models.task import TaskListState
from taskboard.services import create_services, create_task_feed
from taskboard.utils.dates import format_due_date


def _render(state: TaskListState) -> None:
    if state.status == TaskListStatus.LOADING:
        return
    if state.status == TaskListStatus.ERROR:
        print(f"Error: {state.error_message}")
        return
    if not state.tasks:
        print("No tasks found")
        return
    for task in state.tasks:
        status = "[x]" if task.is_complete else "[ ]"
        print(f"{status} {task.title}  (due {format_due_date(task.due_date)})")
        if task.assigned_profile is not None:
            print(f"      assigned to: {task.assigned_profile.username}")
        if task.created_by_profile is not None:
            print(f"      created by:  {task.created_by_profile.username}")


def main(argv: Optional[list[str]] = None) -> int:
    """Application entry point: wire dependencies and print the task feed."""
    argv = sys.argv[1:] if argv is None else argv
    logger: StructuredLogger = get_logger("main")
    logger.info("Starting Taskboard...")

    try:
        task_filter = TaskFilter(argv[0]) if argv else TaskFilter.ALL
    except ValueError:
        print(f"Unknown filter {argv[0]!r}; use one of: "
              f"{', '.join(f.value for f in TaskFilter)}")
        return 2

    # ------------------------------------------------------------------
    # 1. Configuration and Directory connection
    # ------------------------------------------------------------------
    config = get_config()
    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        logger=StructuredLogger(name="database"),
    )

    # ------------------------------------------------------------------
    # 2. Services
    # ------------------------------------------------------------------
    services = create_services(db=db, config=config)
    auth_context = services["auth_context"]
    feed = create_task_feed(services, task_filter=task_filter)

    # ------------------------------------------------------------------
    # 3. Resolve identity, then load tasks
    # ------------------------------------------------------------------
    try:
        with auth_context:
            if not auth_context.is_logged_in:
                print("Please login to view tasks")
                return 1
            profile = auth_context.profile
            print(f"Signed in as {profile.username if profile else '(no profile)'}")
            stop_following = feed.follow(auth_context)
            try:
                _render(feed.state)
            finally:
                stop_following()
                feed.close()
    finally:
        db.close()
        logger.info("Taskboard shut down.")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        pass
