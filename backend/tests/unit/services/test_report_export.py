"""
Unit Tests for report helpers
Tests for: CSV export, submission counts and metrics
"""
from app.services.report_service import count_by_student, results_to_csv, summarize


def skill_result(**overrides):
    row = {
        "id": "log-1",
        "type": "skill",
        "date": "2024-03-01T09:30:00",
        "title": "Hand Hygiene",
        "category": "Infection Control",
        "student": {"id": "s1", "full_name": "Ana Lopez", "email": "ana@example.com"},
        "evaluator_name": "Dr. Reyes",
        "status": "submitted",
    }
    row.update(overrides)
    return row


def clinical_result(**overrides):
    row = {
        "id": "entry-1",
        "type": "clinical",
        "date": "2024-03-02T14:00:00",
        "title": "Med Pass Form",
        "category": "Med Pass",
        "student": {"id": "s2", "full_name": None, "email": "ben@example.com"},
        "preceptor_name": "RN Kim",
    }
    row.update(overrides)
    return row


class TestResultsToCsv:
    """Test CSV export"""

    def test_empty(self):
        assert results_to_csv([]) == ""

    def test_header_and_rows(self):
        csv_text = results_to_csv([skill_result(), clinical_result()])
        lines = csv_text.split("\n")

        assert lines[0] == "Date,Type,Student,Title,Category,Status,Evaluator"
        assert lines[1] == (
            '"2024-03-01","Lab Skill","Ana Lopez","Hand Hygiene",'
            '"Infection Control","submitted","Dr. Reyes"'
        )
        assert lines[2] == (
            '"2024-03-02","Clinical Documentation","Unknown","Med Pass Form",'
            '"Med Pass","Submitted","RN Kim"'
        )

    def test_no_evaluator(self):
        line = results_to_csv([clinical_result(preceptor_name=None)]).split("\n")[1]
        assert line.endswith('"N/A"')

    def test_quotes_are_escaped(self):
        line = results_to_csv([skill_result(title='Say "ah"')]).split("\n")[1]
        assert '"Say \\"ah\\""' in line


class TestMetrics:
    """Test counts and summary"""

    def test_count_by_student(self):
        rows = [skill_result(), skill_result(id="log-2"), clinical_result()]
        assert count_by_student(rows) == {"s1": 2, "s2": 1}

    def test_rows_without_student_are_skipped(self):
        assert count_by_student([{"type": "skill", "student": None}]) == {}

    def test_summarize(self):
        metrics = summarize({"s1": 3, "s2": 1}, {"q1": 2})
        assert metrics == {
            "submissionCounts": {"s1": 3, "s2": 1},
            "totalSubmissions": 4,
            "averageSubmissions": 2,
            "conditionalCounts": {"q1": 2},
        }

    def test_summarize_without_students(self):
        assert summarize({}, {})["averageSubmissions"] == 0
