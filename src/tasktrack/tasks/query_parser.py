# src/tasktrack/tasks/query_parser.py

from __future__ import annotations

import calendar
import logging
import re
from datetime import datetime, timedelta

from ..core.ports import Clock
from .index_store import IndexStore
from .query import FilterSpec, SortDirection, SortField, SortSpec
from .task_models import PRIORITIES, TaskStatus, utc_now

logger = logging.getLogger(__name__)

_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_RELATIVE_DAYS_RE = re.compile(r"^\+(\d+)d$")

_SORT_FIELD_ALIASES: dict[str, SortField] = {
    "title": SortField.TITLE,
    "priority": SortField.PRIORITY,
    "created_at": SortField.CREATED_AT,
    "createdat": SortField.CREATED_AT,
    "updated_at": SortField.UPDATED_AT,
    "updatedat": SortField.UPDATED_AT,
    "due_at": SortField.DUE_AT,
    "dueat": SortField.DUE_AT,
    "due": SortField.DUE_AT,
}


def _add_months(dt: datetime, months: int) -> datetime:
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


class QueryParser:
    """
    Turns a free-text command like "status:todo +urgent due:week report" into a FilterSpec.

    Token rules:
    - status:/priority:/tag:/project:/due:/sort: prefixes are structured filters
    - +name is a tag filter, -word an exclusion (tag if it names one, else text)
    - tags/projects that do not exist are dropped silently
    - anything else, including a prefix with a value we cannot read, is free text
    """

    def __init__(self, store: IndexStore, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    def parse(self, query: str) -> FilterSpec:
        statuses: list[TaskStatus] = []
        priorities: list[int] = []
        tags: list[str] = []
        exclude_tags: list[str] = []
        exclude_text: list[str] = []
        text: list[str] = []
        project_id: str | None = None
        due_before: datetime | None = None
        sort: SortSpec | None = None

        for token in (query or "").split():
            prefix, sep, value = token.partition(":")
            prefix = prefix.lower() if sep else ""

            if prefix == "status":
                try:
                    status = TaskStatus(value.lower())
                except ValueError:
                    text.append(token)
                    continue
                if status not in statuses:
                    statuses.append(status)
            elif prefix == "priority":
                priority = int(value) if value.isdecimal() else None
                if priority not in PRIORITIES:
                    text.append(token)
                    continue
                if priority not in priorities:
                    priorities.append(priority)
            elif prefix == "tag":
                self._add_tag(value, tags)
            elif prefix == "project":
                project = self._store.find_project_by_name(value) if value else None
                if project is not None:
                    project_id = project.id
                else:
                    logger.debug("Query references unknown project %r; ignored", value)
            elif prefix == "due":
                cutoff = self.parse_due(value)
                if cutoff is None:
                    text.append(token)
                    continue
                due_before = cutoff
            elif prefix == "sort":
                parsed = self._parse_sort(value)
                if parsed is None:
                    text.append(token)
                    continue
                sort = parsed
            elif token.startswith("+") and len(token) > 1:
                self._add_tag(token[1:], tags)
            elif token.startswith("-") and len(token) > 1:
                name = token[1:]
                tag = self._store.get_tag_by_name(name)
                if tag is not None:
                    if tag.id not in exclude_tags:
                        exclude_tags.append(tag.id)
                else:
                    exclude_text.append(name)
            else:
                text.append(token)

        return FilterSpec(
            text=" ".join(text) or None,
            statuses=frozenset(statuses) or None,
            priorities=frozenset(priorities) or None,
            tags=frozenset(tags) or None,
            project_id=project_id,
            due_before=due_before,
            sort=sort,
            exclude_tags=frozenset(exclude_tags) or None,
            exclude_text=tuple(exclude_text),
        )

    def _add_tag(self, name: str, tags: list[str]) -> None:
        tag = self._store.get_tag_by_name(name) if name else None
        if tag is None:
            logger.debug("Query references unknown tag %r; ignored", name)
            return
        if tag.id not in tags:
            tags.append(tag.id)

    @staticmethod
    def _parse_sort(value: str) -> SortSpec | None:
        field_raw, _, dir_raw = value.partition(":")
        sort_field = _SORT_FIELD_ALIASES.get(field_raw.lower())
        if sort_field is None:
            return None
        try:
            direction = SortDirection(dir_raw.lower()) if dir_raw else SortDirection.ASC
        except ValueError:
            return None
        return SortSpec(field=sort_field, direction=direction)

    def parse_due(self, value: str) -> datetime | None:
        """
        Resolve a due shortcut to a cutoff instant.

        today/tomorrow/week/month are measured from the start of the current day
        in the clock's timezone. YYYY-MM-DD is midnight of that date; +Nd is N days
        after the start of today.
        """
        now = self._clock()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        key = value.lower()

        if key == "today":
            return today
        if key == "tomorrow":
            return today + timedelta(days=1)
        if key in ("week", "this-week"):
            return today + timedelta(days=7)
        if key in ("month", "this-month"):
            return _add_months(today, 1)

        m = _ISO_DATE_RE.match(value)
        if m:
            try:
                return today.replace(year=int(m.group(1)), month=int(m.group(2)), day=int(m.group(3)))
            except ValueError:
                return None

        m = _RELATIVE_DAYS_RE.match(value)
        if m:
            return today + timedelta(days=int(m.group(1)))

        return None
