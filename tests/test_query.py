from datetime import datetime, timedelta, UTC

from sqlmodel import select

from notevault.db import session_scope
from notevault.models import Note
from notevault.query import MAX_PAGE, NoteFilters, _months_back, date_lower_bound
from notevault.services import create_note, list_notes
from notevault.taxonomy import create_label


def _backdate(note_id, days):
    with session_scope() as s:
        note = s.exec(select(Note).where(Note.id == note_id)).one()
        note.updated_at = datetime.now(UTC) - timedelta(days=days)
        s.add(note)


def _titles(page):
    return [n.title for n in page.notes]


def test_filters_clamp_and_default():
    f = NoteFilters(page=0, limit=500, sort="bogus", search="   ")
    assert (f.page, f.limit, f.sort, f.search) == (1, 50, "updated_desc", None)
    assert NoteFilters(page=3, limit=10).offset == 20
    assert NoteFilters(page=10**20).page == MAX_PAGE


def test_months_back_clamps_day():
    assert _months_back(datetime(2024, 3, 31), 1) == datetime(2024, 2, 29)
    assert _months_back(datetime(2023, 1, 15), 1) == datetime(2022, 12, 15)
    assert _months_back(datetime(2024, 2, 29), 12) == datetime(2023, 2, 28)


def test_date_lower_bound_buckets():
    now = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)
    assert date_lower_bound("all", now) is None
    assert date_lower_bound("week", now) == now - timedelta(days=7)
    assert date_lower_bound("year", now).year == 2023
    today = date_lower_bound("today", now)
    assert today <= now and now - today < timedelta(days=1)


def test_drafts_are_excluded_unless_requested(user):
    create_note(user.id, "draft")
    create_note(user.id, "published", is_draft=False)
    assert _titles(list_notes(user.id)) == ["published"]
    assert sorted(_titles(list_notes(user.id, NoteFilters(include_drafts=True)))) == ["draft", "published"]


def test_visibility_and_encryption_facets(user):
    create_note(user.id, "private", is_draft=False)
    create_note(user.id, "public", is_public=True, is_draft=False)
    create_note(user.id, "secret", encrypted_content="tok", is_encrypted=True, is_draft=False)
    assert _titles(list_notes(user.id, NoteFilters(visibility="public"))) == ["public"]
    assert sorted(_titles(list_notes(user.id, NoteFilters(visibility="private")))) == ["private", "secret"]
    assert _titles(list_notes(user.id, NoteFilters(encryption="encrypted"))) == ["secret"]
    assert len(list_notes(user.id, NoteFilters(encryption="unencrypted")).notes) == 2


def test_search_is_case_insensitive_across_title_and_content(user):
    create_note(user.id, "Groceries", "milk, EGGS", is_draft=False)
    create_note(user.id, "Eggplant recipe", "", is_draft=False)
    create_note(user.id, "Other", "nothing", is_draft=False)
    assert sorted(_titles(list_notes(user.id, NoteFilters(search="egg")))) == ["Eggplant recipe", "Groceries"]
    # wildcard characters are literal
    assert list_notes(user.id, NoteFilters(search="%")).total == 0


def test_notes_are_scoped_to_owner(user, other_user):
    create_note(user.id, "mine", is_draft=False)
    create_note(other_user.id, "theirs", is_draft=False)
    assert _titles(list_notes(user.id)) == ["mine"]


def test_date_bucket_uses_updated_at(user):
    fresh = create_note(user.id, "fresh", is_draft=False)
    old = create_note(user.id, "old", is_draft=False)
    ancient = create_note(user.id, "ancient", is_draft=False)
    _backdate(old.id, 20)
    _backdate(ancient.id, 400)
    assert _titles(list_notes(user.id, NoteFilters(date="week"))) == ["fresh"]
    assert sorted(_titles(list_notes(user.id, NoteFilters(date="year")))) == ["fresh", "old"]
    assert list_notes(user.id, NoteFilters(date="all")).total == 3
    assert fresh.id is not None


def test_title_sort_is_case_insensitive(user):
    for title in ("banana", "Apple", "cherry"):
        create_note(user.id, title, is_draft=False)
    assert _titles(list_notes(user.id, NoteFilters(sort="title_asc"))) == ["Apple", "banana", "cherry"]
    assert _titles(list_notes(user.id, NoteFilters(sort="title_desc"))) == ["cherry", "banana", "Apple"]


def test_empty_title_sorts_as_untitled(user):
    create_note(user.id, "Zebra", is_draft=False)
    create_note(user.id, "Alpha", is_draft=False)
    blank = create_note(user.id, "placeholder", is_draft=False)
    with session_scope() as s:
        note = s.exec(select(Note).where(Note.id == blank.id)).one()
        note.title = ""
        s.add(note)
    assert _titles(list_notes(user.id, NoteFilters(sort="title_asc"))) == ["Alpha", "", "Zebra"]


def test_created_sort(user):
    first = create_note(user.id, "first", is_draft=False)
    second = create_note(user.id, "second", is_draft=False)
    ids = [n.id for n in list_notes(user.id, NoteFilters(sort="created_asc")).notes]
    assert ids == [first.id, second.id]


def test_pagination_metadata(user):
    for i in range(7):
        create_note(user.id, f"note {i}", is_draft=False)
    page = list_notes(user.id, NoteFilters(page=1, limit=3))
    assert (len(page.notes), page.total, page.total_pages, page.has_more) == (3, 7, 3, True)
    last = list_notes(user.id, NoteFilters(page=3, limit=3))
    assert (len(last.notes), last.has_more) == (1, False)
    beyond = list_notes(user.id, NoteFilters(page=9, limit=3))
    assert beyond.notes == [] and beyond.total == 7


def test_label_filter_is_any_of_with_exact_counts(user):
    work = create_label(user.id, "work")
    idea = create_label(user.id, "idea")
    create_note(user.id, "both", is_draft=False, label_ids=[work.id, idea.id])
    create_note(user.id, "work only", is_draft=False, label_ids=[work.id])
    for i in range(5):
        create_note(user.id, f"plain {i}", is_draft=False)

    page = list_notes(user.id, NoteFilters(label_ids=[idea.id], limit=1))
    assert _titles(page) == ["both"]
    assert page.total == 1
    either = list_notes(user.id, NoteFilters(label_ids=[work.id, idea.id], limit=1))
    assert either.total == 2 and either.has_more


def test_search_folds_non_ascii_case(user):
    create_note(user.id, "École notes", "Über alles", is_draft=False)
    create_note(user.id, "Other", "plain", is_draft=False)
    for term in ("école", "ÉCOLE", "über", "ÜBER"):
        assert _titles(list_notes(user.id, NoteFilters(search=term))) == ["École notes"], term


def test_title_sort_folds_non_ascii_case(user):
    for title in ("Émile", "écru", "Zola"):
        create_note(user.id, title, is_draft=False)
    # case folds first; accented letters still sort after ASCII ones
    assert _titles(list_notes(user.id, NoteFilters(sort="title_asc"))) == ["Zola", "écru", "Émile"]
