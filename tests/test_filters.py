"""Tests for the message filter and its query rendering."""
from datetime import UTC, datetime

from portal_sync.filters import MessagesFilter

TODAY = datetime(2024, 3, 10)


class TestFromCriteria:
    def test_day_window_ignores_other_bounds(self) -> None:
        result = MessagesFilter.from_criteria(
            day=2,
            days=30,
            before=1,
            min_date_time=datetime(2020, 1, 1),
            max_date_time=datetime(2030, 1, 1),
            today=TODAY,
        )

        assert result.min_date_time == datetime(2024, 3, 8)
        assert result.max_date_time == datetime(2024, 3, 9)

    def test_days_replaces_explicit_minimum(self) -> None:
        result = MessagesFilter.from_criteria(days=7, min_date_time=datetime(2020, 1, 1), today=TODAY)

        assert result.min_date_time == datetime(2024, 3, 3)
        assert result.max_date_time is None

    def test_before_replaces_explicit_maximum(self) -> None:
        explicit_min = datetime(2024, 1, 1)
        result = MessagesFilter.from_criteria(
            before=3, min_date_time=explicit_min, max_date_time=datetime(2030, 1, 1), today=TODAY
        )

        assert result.min_date_time == explicit_min
        assert result.max_date_time == datetime(2024, 3, 7)

    def test_explicit_dates_used_without_relative_selectors(self) -> None:
        low, high = datetime(2024, 1, 1), datetime(2024, 2, 1)
        result = MessagesFilter.from_criteria(min_date_time=low, max_date_time=high, today=TODAY)

        assert (result.min_date_time, result.max_date_time) == (low, high)

    def test_direction(self) -> None:
        assert MessagesFilter.from_criteria(inbox=True).type == "inbox"
        assert MessagesFilter.from_criteria(outbox=True).type == "outbox"
        assert MessagesFilter.from_criteria(inbox=True, outbox=True).type is None
        assert MessagesFilter.from_criteria().type is None


class TestBuildQuery:
    def test_renders_keys_in_canonical_order(self) -> None:
        result = MessagesFilter(
            task="130",
            min_date_time=datetime(2024, 3, 1, tzinfo=UTC),
            max_date_time=datetime(2024, 3, 2, 12, 30, tzinfo=UTC),
            min_size=10,
            max_size=2000,
            type="outbox",
            status="registered",
            page=2,
        )

        assert result.build_query() == (
            "?Task=Zadacha_130"
            "&MinDateTime=2024-03-01T00:00:00Z"
            "&MaxDateTime=2024-03-02T12:30:00Z"
            "&MinSize=10&MaxSize=2000&Type=outbox&Status=registered&Page=2"
        )

    def test_first_page_is_omitted(self) -> None:
        assert MessagesFilter(status="new", page=1).build_query() == "?Status=new"

    def test_converts_to_utc_at_render_time(self) -> None:
        local = datetime(2024, 3, 1, 3, 0).astimezone()
        rendered = MessagesFilter(min_date_time=local).build_query()

        expected = local.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
        assert rendered == f"?MinDateTime={expected}"

    def test_empty_filter_renders_nothing(self) -> None:
        assert MessagesFilter().build_query() == ""


class TestIsEmpty:
    def test_no_criteria(self) -> None:
        assert MessagesFilter().is_empty()

    def test_page_only_filter_is_empty(self) -> None:
        assert MessagesFilter(page=3).is_empty()

    def test_any_selector_makes_it_non_empty(self) -> None:
        assert not MessagesFilter(task="130").is_empty()
        assert not MessagesFilter(min_size=1).is_empty()


class TestTasks:
    def test_comma_separated_tasks(self) -> None:
        result = MessagesFilter(task="130, Zadacha_137", page=4)

        assert result.tasks() == ["130", "Zadacha_137"]
        assert result.for_task("130") == MessagesFilter(task="130")

    def test_single_task(self) -> None:
        assert MessagesFilter(task="130").tasks() == ["130"]
        assert MessagesFilter().tasks() == [None]
