"""
Timeline tool handlers.

Core logic lives in the handle_* functions of api.handlers (return dicts).
MCP wrappers in register_timeline_tools() serialize to JSON strings.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from vault_timeline.api.handlers import (
    handle_cache_status,
    handle_convert,
    handle_forest,
    handle_parse,
    handle_set_collapsed,
    handle_set_events,
    handle_task_add,
    handle_task_delete,
    handle_task_get,
    handle_task_list,
    handle_task_update,
    handle_timeline,
)

log = logging.getLogger(__name__)


def register_timeline_tools(mcp: FastMCP, cache) -> None:
    """Register all task and timeline MCP tools onto the FastMCP instance."""

    @mcp.tool()
    def task_list(
        path: Optional[str] = None,
        completed: Optional[bool] = None,
        tag: Optional[str] = None,
        scheduled_on: Optional[str] = None,
        due_before: Optional[str] = None,
        limit: int = 200,
    ) -> str:
        """
        List tasks with optional filtering, in source order.

        Args:
            path: Only tasks in files whose vault path starts with this prefix
            completed: True = done only, False = open only, omit = both
            tag: Hashtag filter, with or without "#"
            scheduled_on: ISO date (YYYY-MM-DD), matches timed schedules on that day too
            due_before: ISO date (YYYY-MM-DD), tasks due on or before it
            limit: Maximum number of results (default 200)

        Returns:
            JSON array of task objects
        """
        return json.dumps(
            handle_task_list(
                cache,
                path=path,
                completed=completed,
                tag=tag,
                scheduled_on=scheduled_on,
                due_before=due_before,
                limit=limit,
            ),
            indent=2,
        )

    @mcp.tool()
    def task_get(task_id: str) -> str:
        """
        Get a single task by ID, with its current text in its own dialect.

        Args:
            task_id: "<path without .md>::<line>", e.g. "Daily/2024-01-01::4",
                     or the page path for frontmatter tasks

        Returns:
            JSON task object, or error message
        """
        return json.dumps(handle_task_get(cache, task_id=task_id), indent=2)

    @mcp.tool()
    def task_add(
        title: str,
        file_path: str,
        heading: Optional[str] = None,
        scheduled: Optional[str] = None,
        due: Optional[str] = None,
        start: Optional[str] = None,
        reminder: Optional[str] = None,
        priority: Optional[str] = None,
        length: Optional[str] = None,
        repeat: Optional[str] = None,
        query: Optional[str] = None,
    ) -> str:
        """
        Add a new task line to a markdown file (created if missing).

        The line is written in the configured default field format.

        Args:
            title: Task title (may contain #tags and [[links]])
            file_path: Vault-relative path of the target file
            heading: Section heading to add under (appended if missing);
                     omit to insert at the top of the document
            scheduled: YYYY-MM-DD (all-day) or YYYY-MM-DDTHH:MM
            due: Due date
            start: Start date; the task stays hidden until then
            reminder: YYYY-MM-DDTHH:MM
            priority: highest, high, medium, low, lowest (or !!!, !!, !, ?, ??)
            length: Duration such as "30m" or "1h30m"
            repeat: Recurrence text, e.g. "every week"
            query: Sub-task query, e.g. '"Projects" #errand WHERE !due'

        Returns:
            JSON object with the new task
        """
        try:
            return json.dumps(
                handle_task_add(
                    cache,
                    title=title,
                    file_path=file_path,
                    heading=heading,
                    scheduled=scheduled,
                    due=due,
                    start=start,
                    reminder=reminder,
                    priority=priority,
                    length=length,
                    repeat=repeat,
                    query=query,
                ),
                indent=2,
            )
        except Exception as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    def task_update(
        task_id: str,
        title: Optional[str] = None,
        completed: Optional[bool] = None,
        scheduled: Optional[str] = None,
        due: Optional[str] = None,
        start: Optional[str] = None,
        reminder: Optional[str] = None,
        priority: Optional[str] = None,
        length: Optional[str] = None,
        repeat: Optional[str] = None,
        query: Optional[str] = None,
    ) -> str:
        """
        Update task fields and write the line back in its own dialect.

        Only fields you pass will be changed. Pass an empty string to clear a field.
        Completing a task stamps today's completion date.

        Returns:
            Updated task JSON or error message
        """
        try:
            return json.dumps(
                handle_task_update(
                    cache,
                    task_id=task_id,
                    title=title,
                    completed=completed,
                    scheduled=scheduled,
                    due=due,
                    start=start,
                    reminder=reminder,
                    priority=priority,
                    length=length,
                    repeat=repeat,
                    query=query,
                ),
                indent=2,
            )
        except Exception as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    def task_delete(task_id: str) -> str:
        """
        Delete a task together with its sub-tasks and notes.

        Returns:
            JSON with the list of deleted ids, or error message
        """
        try:
            return json.dumps(handle_task_delete(cache, task_id=task_id), indent=2)
        except Exception as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    def task_forest(path: Optional[str] = None) -> str:
        """
        Tasks nested into parent/sub-task trees.

        Args:
            path: Restrict to files whose vault path starts with this prefix

        Returns:
            JSON array of root tasks, each with "subtasks"
        """
        try:
            return json.dumps(handle_forest(cache, path=path), indent=2)
        except Exception as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    def timeline(
        day: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
        now: Optional[str] = None,
        is_now: bool = False,
        past: bool = False,
        show_completed: Optional[bool] = None,
    ) -> str:
        """
        Lay out tasks and calendar events for one window.

        Pass either a day (YYYY-MM-DD, default today, using the configured
        day start/end hours) or explicit start/end bounds.

        Args:
            day: Display day
            start: Window start, YYYY-MM-DDTHH:MM
            end: Window end (exclusive)
            now: Override the current time (YYYY-MM-DDTHH:MM)
            is_now: Treat explicit bounds as the live window (enables "past")
            past: Past mode: show what was done instead of what is planned
            show_completed: Include completed tasks (default from config)

        Returns:
            JSON with past, all_day, blocks (nested time blocks) and upcoming
        """
        try:
            return json.dumps(
                handle_timeline(
                    cache,
                    day=day,
                    start=start,
                    end=end,
                    now=now,
                    is_now=is_now,
                    past=past,
                    show_completed=show_completed,
                ),
                indent=2,
            )
        except Exception as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    def events_set(events: List[Dict[str, Any]]) -> str:
        """
        Replace the calendar events used by the timeline.

        Args:
            events: Objects with id, start_iso, end_iso and optional title,
                    calendar_id, notes, location. All-day events use dates.

        Returns:
            JSON with the number of events loaded
        """
        try:
            return json.dumps(handle_set_events(cache, events=events), indent=2)
        except Exception as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    def task_collapse(task_id: str, collapsed: bool = True) -> str:
        """
        Mark a task as collapsed (or expanded) in tree views.

        Returns:
            JSON with the full collapsed map
        """
        return json.dumps(
            handle_set_collapsed(cache, task_id=task_id, collapsed=collapsed), indent=2
        )

    @mcp.tool()
    def task_parse(text: str, path: str = "", field_format: Optional[str] = None) -> str:
        """
        Parse one task line without touching the vault.

        Args:
            text: A line like "- [ ] Buy milk [scheduled:: 2024-01-01T09:00]"
            path: Vault path to assume (daily-note dates come from it)
            field_format: Fallback dialect when the line has no recognisable fields

        Returns:
            JSON task object plus "detected_format"
        """
        try:
            return json.dumps(
                handle_parse(cache, text=text, path=path, field_format=field_format), indent=2
            )
        except Exception as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    def task_convert(
        text: str,
        to_format: str,
        from_format: Optional[str] = None,
        path: str = "",
    ) -> str:
        """
        Rewrite a task line in another field format.

        Args:
            text: The task line
            to_format: dataview, tasks, full-calendar, simple or kanban
            from_format: Fallback dialect for parsing
            path: Vault path to assume

        Returns:
            JSON with the converted "text"
        """
        try:
            return json.dumps(
                handle_convert(
                    cache, text=text, to_format=to_format, from_format=from_format, path=path
                ),
                indent=2,
            )
        except Exception as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    def cache_status() -> str:
        """
        Show vault cache statistics.

        Returns:
            JSON with file count, task count, event count, last scan time, etc.
        """
        return json.dumps(handle_cache_status(cache), indent=2)
