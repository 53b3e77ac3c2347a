"""
Unit Tests for portfolio auto-population
Tests for: aggregation and row filtering
"""
import pytest

from app.core.exceptions import ValidationError
from app.services.portfolio_service import _column_matches, aggregate


@pytest.fixture
def rows():
    return [
        {"submitted_at": "2024-03-01T08:00:00", "status": "submitted", "responses": {"score": "8"}},
        {"submitted_at": "2024-03-05T08:00:00", "status": "submitted", "responses": {"score": "6"}},
        {"submitted_at": "2024-03-03T08:00:00", "status": "rejected", "responses": {"score": "n/a"}},
    ]


class TestAggregate:
    """Test each aggregation"""

    def test_count(self, rows):
        assert aggregate(rows, "responses", "score", "count") == 3

    def test_sum_treats_unparsable_as_zero(self, rows):
        assert aggregate(rows, "responses", "score", "sum") == 14.0

    def test_average(self, rows):
        assert aggregate(rows, "responses", "score", "average") == pytest.approx(14 / 3)

    def test_average_of_nothing(self):
        assert aggregate([], "responses", "score", "average") == 0

    def test_latest(self, rows):
        assert aggregate(rows, "responses", "score", "latest") == "6"

    def test_latest_of_nothing(self):
        assert aggregate([], "form_data", "pain", "latest") is None

    def test_unknown_aggregation(self, rows):
        with pytest.raises(ValidationError) as exc:
            aggregate(rows, "responses", "score", "median")
        assert exc.value.message == "Invalid aggregation type"


class TestColumnFilters:
    """Test filterConditions against row columns"""

    def test_equals(self, rows):
        assert _column_matches(rows[0], {"field": "status", "operator": "equals", "value": "submitted"})

    def test_not_equals(self, rows):
        assert _column_matches(rows[2], {"field": "status", "operator": "not_equals", "value": "submitted"})

    def test_contains_case_insensitive(self, rows):
        assert _column_matches(rows[0], {"field": "status", "operator": "contains", "value": "SUB"})

    def test_greater_than_dates_compare_as_text(self, rows):
        condition = {"field": "submitted_at", "operator": "greater_than", "value": "2024-03-02"}
        assert [r for r in rows if _column_matches(r, condition)] == [rows[1], rows[2]]

    def test_missing_column(self):
        assert not _column_matches({}, {"field": "status", "operator": "equals", "value": "x"})
