# tests/test_query_engine.py

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from tasktrack.core.errors import ValidationFailed
from tasktrack.tasks.index_store import IndexStore
from tasktrack.tasks.query import FilterSpec, QueryEngine, SortDirection, SortField, SortSpec, days_until
from tasktrack.tasks.task_index import IndexKind
from tasktrack.tasks.task_models import TaskStatus
from tasktrack.tasks.validation import create_project, create_tag, create_task


def _ids(views) -> list[str]:
    return [v.task.id for v in views]


@pytest.fixture()
def engine(store: IndexStore, clock) -> QueryEngine:
    return QueryEngine(store, clock)


def test_empty_store_returns_empty_list(engine: QueryEngine) -> None:
    assert engine.search() == []
    assert engine.search(FilterSpec(statuses={"todo"})) == []


def test_scenario_add_search_remove(store: IndexStore, engine: QueryEngine, clock) -> None:
    a = create_task(title="A", priority=1, status="todo", now=clock())
    b = create_task(title="B", priority=3, status="done", now=clock())
    store.add_task(a)
    store.add_task(b)

    assert _ids(engine.search(FilterSpec(statuses={"todo"}))) == [a.id]
    assert set(_ids(engine.search(FilterSpec()))) == {a.id, b.id}
    assert set(_ids(engine.search(FilterSpec(priorities={1, 3})))) == {a.id, b.id}

    store.remove_task(b.id)

    assert _ids(engine.search(FilterSpec())) == [a.id]
    assert TaskStatus.DONE not in store.index.keys(IndexKind.STATUS)


def test_categories_or_within_and_across(store: IndexStore, engine: QueryEngine) -> None:
    urgent = create_tag(name="urgent")
    home = create_tag(name="home")
    store.add_tag(urgent)
    store.add_tag(home)

    todo_urgent = create_task(title="todo urgent", status="todo", tags=[urgent.id])
    doing_urgent = create_task(title="doing urgent", status="doing", tags=[urgent.id, home.id])
    done_urgent = create_task(title="done urgent", status="done", tags=[urgent.id])
    todo_home = create_task(title="todo home", status="todo", tags=[home.id])
    todo_plain = create_task(title="todo plain", status="todo")
    for t in (todo_urgent, doing_urgent, done_urgent, todo_home, todo_plain):
        store.add_task(t)

    spec = FilterSpec(statuses={"todo", "doing"}, tags={urgent.id})
    assert set(_ids(engine.search(spec))) == {todo_urgent.id, doing_urgent.id}

    # Tags are OR'ed: either tag matches.
    spec = FilterSpec(tags={urgent.id, home.id}, statuses={"todo"})
    assert set(_ids(engine.search(spec))) == {todo_urgent.id, todo_home.id}


def test_category_with_no_bucket_matches_nothing(store: IndexStore, engine: QueryEngine) -> None:
    store.add_task(create_task(title="x", priority=2, project_id="p1"))
    assert engine.search(FilterSpec(priorities={5})) == []
    assert engine.search(FilterSpec(project_id="p2")) == []
    assert engine.search(FilterSpec(tags={"missing"})) == []


def test_unsorted_results_keep_store_order_and_are_idempotent(store: IndexStore, engine: QueryEngine) -> None:
    tasks = [create_task(title=f"t{i}", priority=(i % 5) + 1) for i in range(8)]
    for t in tasks:
        store.add_task(t)

    first = engine.search(FilterSpec())
    second = engine.search(FilterSpec())
    assert first == second
    assert _ids(first) == [t.id for t in tasks]


def test_priority_sort(store: IndexStore, engine: QueryEngine) -> None:
    for p in (3, 1, 5, 2):
        store.add_task(create_task(title=f"p{p}", priority=p))

    asc = engine.search(FilterSpec(sort=SortSpec(SortField.PRIORITY)))
    assert [v.task.priority for v in asc] == [1, 2, 3, 5]

    desc = engine.search(FilterSpec(sort=SortSpec("priority", "desc")))
    assert [v.task.priority for v in desc] == [5, 3, 2, 1]


def test_title_sort_is_case_insensitive(store: IndexStore, engine: QueryEngine) -> None:
    for title in ("banana", "Apple", "cherry"):
        store.add_task(create_task(title=title))

    views = engine.search(FilterSpec(sort=SortSpec(SortField.TITLE)))
    assert [v.task.title for v in views] == ["Apple", "banana", "cherry"]


def test_sort_is_stable_on_ties(store: IndexStore, engine: QueryEngine) -> None:
    first = create_task(title="first", priority=2)
    second = create_task(title="second", priority=2)
    top = create_task(title="top", priority=1)
    for t in (first, second, top):
        store.add_task(t)

    views = engine.search(FilterSpec(sort=SortSpec(SortField.PRIORITY)))
    assert _ids(views) == [top.id, first.id, second.id]


def test_due_sort_puts_missing_dates_at_the_far_end(store: IndexStore, engine: QueryEngine, clock) -> None:
    now = clock()
    undated = create_task(title="undated")
    later = create_task(title="later", due_at=now + timedelta(days=3))
    sooner = create_task(title="sooner", due_at=now + timedelta(days=1))
    for t in (undated, later, sooner):
        store.add_task(t)

    asc = engine.search(FilterSpec(sort=SortSpec(SortField.DUE_AT)))
    assert _ids(asc) == [sooner.id, later.id, undated.id]

    # Infinitely far in the future: descending puts it first.
    desc = engine.search(FilterSpec(sort=SortSpec(SortField.DUE_AT, SortDirection.DESC)))
    assert _ids(desc) == [undated.id, later.id, sooner.id]


def test_created_at_sort(store: IndexStore, engine: QueryEngine, clock) -> None:
    old = create_task(title="old", now=clock() - timedelta(days=2))
    new = create_task(title="new", now=clock())
    store.add_task(new)
    store.add_task(old)

    views = engine.search(FilterSpec(sort=SortSpec(SortField.CREATED_AT)))
    assert _ids(views) == [old.id, new.id]


def test_due_before_is_inclusive_and_skips_undated(store: IndexStore, engine: QueryEngine, clock) -> None:
    cutoff = clock() + timedelta(days=1)
    on_cutoff = create_task(title="on", due_at=cutoff)
    after = create_task(title="after", due_at=cutoff + timedelta(seconds=1))
    undated = create_task(title="undated")
    for t in (on_cutoff, after, undated):
        store.add_task(t)

    assert _ids(engine.search(FilterSpec(due_before=cutoff))) == [on_cutoff.id]


def test_text_matches_title_or_notes_case_insensitively(store: IndexStore, engine: QueryEngine) -> None:
    in_title = create_task(title="Quarterly REPORT")
    in_notes = create_task(title="misc", notes="draft the report")
    neither = create_task(title="groceries")
    for t in (in_title, in_notes, neither):
        store.add_task(t)

    assert _ids(engine.search(FilterSpec(text="report"))) == [in_title.id, in_notes.id]


def test_exclusions(store: IndexStore, engine: QueryEngine) -> None:
    later = create_tag(name="later")
    store.add_tag(later)
    keep = create_task(title="write report")
    tagged = create_task(title="file report", tags=[later.id])
    drafty = create_task(title="draft report")
    for t in (keep, tagged, drafty):
        store.add_task(t)

    spec = FilterSpec(text="report", exclude_tags={later.id}, exclude_text=("DRAFT",))
    assert _ids(engine.search(spec)) == [keep.id]

    # Exclusions alone narrow the full set.
    assert _ids(engine.search(FilterSpec(exclude_tags={later.id}))) == [keep.id, drafty.id]


def test_overdue_flag_edge_cases(store: IndexStore, engine: QueryEngine, clock) -> None:
    now = clock()
    undated = create_task(title="undated")
    done_late = create_task(title="done late", status="done", due_at=now - timedelta(days=1))
    todo_late = create_task(title="todo late", status="todo", due_at=now - timedelta(days=1))
    for t in (undated, done_late, todo_late):
        store.add_task(t)

    flags = {v.task.title: v.is_overdue for v in engine.search()}
    assert flags == {"undated": False, "done late": False, "todo late": True}


def test_overdue_flag_follows_the_clock_without_mutation(store: IndexStore, engine: QueryEngine, clock) -> None:
    task = create_task(title="soon", due_at=clock() + timedelta(hours=1))
    store.add_task(task)

    assert engine.search()[0].is_overdue is False
    clock.advance(hours=2)
    assert engine.search()[0].is_overdue is True


def test_days_until_due_uses_ceiling(store: IndexStore, engine: QueryEngine, clock) -> None:
    now = clock()
    assert days_until(None, now) is None
    assert days_until(now + timedelta(hours=1), now) == 1
    assert days_until(now + timedelta(days=2), now) == 2
    assert days_until(now + timedelta(days=2, seconds=1), now) == 3
    assert days_until(now - timedelta(hours=1), now) == 0
    assert days_until(now - timedelta(days=1, hours=1), now) == -1

    store.add_task(create_task(title="t", due_at=now + timedelta(days=1, hours=6)))
    assert engine.search()[0].days_until_due == 2


def test_hydration_omits_dangling_references(store: IndexStore, engine: QueryEngine) -> None:
    project = create_project(name="Work")
    tag = create_tag(name="urgent")
    store.add_project(project)
    store.add_tag(tag)

    ok = create_task(title="ok", project_id=project.id, tags=[tag.id, "ghost-tag"])
    orphan = create_task(title="orphan", project_id="ghost-project")
    store.add_task(ok)
    store.add_task(orphan)

    views = {v.task.title: v for v in engine.search()}
    assert views["ok"].project == project
    assert views["ok"].tags == (tag,)
    assert views["orphan"].project is None
    assert views["orphan"].tags == ()

    store.remove_tag(tag.id)
    assert engine.search(FilterSpec(project_id=project.id))[0].tags == ()


def test_search_sees_updates_immediately(store: IndexStore, engine: QueryEngine) -> None:
    task = create_task(title="t", status="todo")
    store.add_task(task)
    store.update_task(replace(task, status=TaskStatus.DOING))

    assert engine.search(FilterSpec(statuses={"todo"})) == []
    assert _ids(engine.search(FilterSpec(statuses={"doing"}))) == [task.id]


# ---- FilterSpec ----


def test_filter_spec_normalizes_empty_collections() -> None:
    spec = FilterSpec(text="  ", statuses=set(), priorities=[], tags=frozenset(), project_id="")
    assert spec.is_empty()
    assert spec.statuses is None
    assert spec.tags is None
    assert spec.project_id is None


def test_filter_spec_coerces_statuses() -> None:
    spec = FilterSpec(statuses=["todo", TaskStatus.DONE])
    assert spec.statuses == frozenset({TaskStatus.TODO, TaskStatus.DONE})
    assert all(isinstance(s, TaskStatus) for s in spec.statuses)


def test_filter_spec_rejects_bad_values() -> None:
    with pytest.raises(ValidationFailed) as exc:
        FilterSpec(statuses={"later"}, priorities={0, 6})
    fields = [e.field for e in exc.value.errors]
    assert fields.count("statuses") == 1
    assert fields.count("priorities") == 2

    with pytest.raises(ValidationFailed):
        FilterSpec(due_before=datetime(2024, 1, 1))


def test_sort_spec_rejects_unknown_field_and_direction() -> None:
    with pytest.raises(ValidationFailed):
        SortSpec("color")
    with pytest.raises(ValidationFailed):
        SortSpec(SortField.TITLE, "sideways")


def test_selective_search_does_not_walk_the_store(store: IndexStore, engine: QueryEngine, monkeypatch) -> None:
    for i in range(50):
        store.add_task(create_task(title=f"t{i}", priority=3))
    urgent = create_task(title="urgent", priority=1)
    store.add_task(urgent)

    def no_scan() -> list:
        raise AssertionError("full scan")

    monkeypatch.setattr(store, "all_tasks", no_scan)
    monkeypatch.setattr(store, "all_task_ids", no_scan)

    assert _ids(engine.search(FilterSpec(priorities={1}))) == [urgent.id]


@pytest.mark.parametrize(
    ("raw", "field", "direction"),
    [
        ("priority", SortField.PRIORITY, SortDirection.ASC),
        ("due_at:desc", SortField.DUE_AT, SortDirection.DESC),
        (("title", "desc"), SortField.TITLE, SortDirection.DESC),
        (("created_at",), SortField.CREATED_AT, SortDirection.ASC),
    ],
)
def test_filter_spec_coerces_sort(raw, field: SortField, direction: SortDirection) -> None:
    spec = FilterSpec(sort=raw)
    assert spec.sort == SortSpec(field, direction)


@pytest.mark.parametrize("raw", ["colour", "priority:sideways", 42, ("a", "b", "c")])
def test_filter_spec_rejects_unreadable_sort(raw) -> None:
    with pytest.raises(ValidationFailed) as exc:
        FilterSpec(sort=raw)
    assert [e.field for e in exc.value.errors] == ["sort"]


def test_string_sort_reaches_the_engine(store: IndexStore, engine: QueryEngine) -> None:
    for p in (4, 2, 5):
        store.add_task(create_task(title=f"p{p}", priority=p))

    views = engine.search(FilterSpec(sort="priority:desc"))
    assert [v.task.priority for v in views] == [5, 4, 2]
