"""
Report Service
Builds the basic and academic reports from skill logs and clinical entries of
an instructor's students, plus the query builder field catalogue and saved
queries.

Filtering and counting run over rows that were fetched in full; the only
database filter is the student id list.
"""

import json
from typing import List, Optional, Dict, Any, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthorizationError, SavedQueryNotFoundError, ValidationError
from app.core.logging_config import logger
from app.models.clinical import ClinicalEntry, ClinicalForm, ClinicalFormField, ClinicalType
from app.models.report import SavedQuery
from app.models.skill import Skill, SkillCategory, SkillLog
from app.models.user import User, UserRole
from app.schemas.report import ReportConfig
from app.services import conditions
from app.services.access import load_students
from app.services.data_access import row_to_dict

CSV_HEADERS = ["Date", "Type", "Student", "Title", "Category", "Status", "Evaluator"]
OPTION_TYPES = {"select", "multiselect", "multiple_choice", "select_multiple"}


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _enum_value(value) -> Any:
    return getattr(value, "value", value)


def count_by_student(rows: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for row in rows:
        student_id = (row.get("student") or {}).get("id")
        if student_id:
            counts[student_id] = counts.get(student_id, 0) + 1
    return counts


def summarize(submission_counts: Dict[str, int],
              conditional_counts: Dict[str, int]) -> Dict[str, Any]:
    total = sum(submission_counts.values())
    return {
        "submissionCounts": submission_counts,
        "totalSubmissions": total,
        "averageSubmissions": total / len(submission_counts) if submission_counts else 0,
        "conditionalCounts": conditional_counts,
    }


def results_to_csv(results: List[Dict[str, Any]]) -> str:
    """CSV export; each cell is JSON-quoted"""
    if not results:
        return ""

    lines = [",".join(CSV_HEADERS)]
    for item in results:
        date = (item.get("date") or "")[:10]
        row = [
            date,
            "Lab Skill" if item.get("type") == "skill" else "Clinical Documentation",
            (item.get("student") or {}).get("full_name") or "Unknown",
            item.get("title"),
            item.get("category"),
            item.get("status") or "Submitted",
            item.get("evaluator_name") or item.get("preceptor_name") or "N/A",
        ]
        lines.append(",".join(json.dumps(cell) for cell in row))
    return "\n".join(lines)


class ReportService:
    """Service for instructor reports"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =====================================================
    # SOURCE ROWS
    # =====================================================

    async def _students(self, instructor: User) -> Dict[str, Dict[str, Any]]:
        return {
            s.id: {"id": s.id, "full_name": s.full_name, "email": s.email}
            for s in await load_students(self.db, instructor)
        }

    async def fetch_skill_results(self, students: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not students:
            return []
        result = await self.db.execute(
            select(SkillLog, Skill.name, SkillCategory.name)
            .join(Skill, Skill.id == SkillLog.skill_id)
            .outerjoin(SkillCategory, SkillCategory.id == Skill.category_id)
            .where(SkillLog.student_id.in_(list(students)))
            .order_by(SkillLog.submitted_at.desc())
        )
        return [
            {
                "id": log.id,
                "type": "skill",
                "source_id": log.skill_id,
                "date": _iso(log.submitted_at),
                "title": skill_name,
                "category": category_name,
                "student": students.get(log.student_id),
                "evaluator_name": log.evaluator_name,
                "evaluator_type": _enum_value(log.evaluator_type),
                "status": _enum_value(log.status),
                "responses": log.responses or {},
            }
            for log, skill_name, category_name in result.all()
        ]

    async def fetch_clinical_results(self, students: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not students:
            return []
        result = await self.db.execute(
            select(ClinicalEntry, ClinicalForm.name, ClinicalType.name)
            .join(ClinicalForm, ClinicalForm.id == ClinicalEntry.form_id)
            .join(ClinicalType, ClinicalType.id == ClinicalEntry.clinical_type_id)
            .where(ClinicalEntry.student_id.in_(list(students)))
            .order_by(ClinicalEntry.submitted_at.desc())
        )
        return [
            {
                "id": entry.id,
                "type": "clinical",
                "source_id": entry.form_id,
                "date": _iso(entry.submitted_at),
                "title": form_name,
                "category": type_name,
                "student": students.get(entry.student_id),
                "location": entry.location,
                "department": entry.department,
                "preceptor_name": entry.preceptor_name,
                "preceptor_credentials": entry.preceptor_credentials,
                "preceptor_email": entry.preceptor_email,
                "form_data": entry.form_data or {},
            }
            for entry, form_name, type_name in result.all()
        ]

    # =====================================================
    # REPORTS
    # =====================================================

    async def build_basic_report(self, instructor: User) -> Dict[str, Any]:
        """Every skill log and clinical entry of the instructor's students"""
        students = await self._students(instructor)
        results = await self.fetch_skill_results(students)
        results += await self.fetch_clinical_results(students)

        return {
            "results": results,
            "metrics": summarize(count_by_student(results), {}),
        }

    async def build_academic_report(self, instructor: User, config: Any) -> Dict[str, Any]:
        """
        Report builder execution.

        Only the sources named in dataPoints are loaded. countIfConditions are
        counted over every loaded row, then rows failing any condition are
        dropped. Submission counts are taken from the remaining rows when
        selectedFields asks for them.
        """
        if not isinstance(config, ReportConfig):
            config = ReportConfig.model_validate(config or {})

        students = await self._students(instructor)
        results: List[Dict[str, Any]] = []
        if "skills" in config.dataPoints:
            results += await self.fetch_skill_results(students)
        if "clinical" in config.dataPoints:
            results += await self.fetch_clinical_results(students)

        conditional_counts: Dict[str, int] = {}
        if config.countIfConditions:
            conditional_counts = conditions.count_if(results, config.countIfConditions)
            results = conditions.filter_rows(results, config.countIfConditions)

        submission_counts: Dict[str, int] = {}
        if "submission_count" in config.selectedFields:
            submission_counts = count_by_student(results)
            results = [
                {**row, "submission_count": submission_counts.get((row.get("student") or {}).get("id"), 0)}
                for row in results
            ]

        metrics = summarize(submission_counts, conditional_counts)
        metrics["formSpecificCount"] = config.formSpecificCount or None
        if config.formSpecificCount:
            metrics["formSpecificTotal"] = sum(
                1 for row in results if row.get("source_id") == config.formSpecificCount
            )

        logger.info(
            f"[Reports] Academic report for {instructor.id}: {len(results)} rows",
            extra={"event_type": "report", "students": len(students), "rows": len(results)}
        )
        return {"results": results, "metrics": metrics}

    # =====================================================
    # QUERY BUILDER CATALOGUE
    # =====================================================

    async def field_catalog(self) -> Dict[str, Any]:
        labels: Dict[str, str] = {"submission_count": "Submission Count"}
        types: Dict[str, str] = {"submission_count": "submission_count"}
        options: Dict[str, List[str]] = {}

        skills_result = await self.db.execute(select(Skill).order_by(Skill.name))
        skill_group = []
        for skill in skills_result.scalars().all():
            questions = sorted(skill.questions, key=lambda q: q.get("order_index") or 0)
            entries = []
            for question in questions:
                qid = question.get("id")
                if not qid:
                    continue
                qtype = question.get("response_type") or "text"
                labels[qid] = f"{question.get('question_text')} ({skill.name})"
                types[qid] = qtype
                if qtype in OPTION_TYPES:
                    options[qid] = list(question.get("options") or [])
                entries.append({"id": qid, "label": question.get("question_text"), "type": qtype})
            skill_group.append({"id": skill.id, "name": skill.name, "fields": entries})

        types_result = await self.db.execute(select(ClinicalType).order_by(ClinicalType.name))
        forms_result = await self.db.execute(select(ClinicalForm).order_by(ClinicalForm.name))
        fields_result = await self.db.execute(
            select(ClinicalFormField).order_by(ClinicalFormField.order_index)
        )
        forms_by_type: Dict[str, List[ClinicalForm]] = {}
        for form in forms_result.scalars().all():
            forms_by_type.setdefault(form.clinical_type_id, []).append(form)
        fields_by_form: Dict[str, List[ClinicalFormField]] = {}
        for field in fields_result.scalars().all():
            fields_by_form.setdefault(field.form_id, []).append(field)

        clinical_group = []
        for clinical_type in types_result.scalars().all():
            form_entries = []
            for form in forms_by_type.get(clinical_type.id, []):
                field_entries = []
                for field in fields_by_form.get(form.id, []):
                    ftype = _enum_value(field.field_type)
                    if ftype == "instructions":
                        continue
                    labels[field.field_name] = f"{field.field_label} ({clinical_type.name} - {form.name})"
                    types[field.field_name] = ftype
                    if ftype in OPTION_TYPES:
                        options[field.field_name] = list(field.field_options or [])
                    field_entries.append({"id": field.field_name, "label": field.field_label, "type": ftype})
                form_entries.append({"id": form.id, "name": form.name, "fields": field_entries})
            clinical_group.append({"id": clinical_type.id, "name": clinical_type.name, "forms": form_entries})

        return {
            "groups": {
                "metrics": [{"id": "submission_count", "label": "Submission Count", "type": "submission_count"}],
                "skill_logs": skill_group,
                "clinical_entries": clinical_group,
            },
            "labels": labels,
            "types": types,
            "options": options,
        }

    # =====================================================
    # SAVED QUERIES
    # =====================================================

    async def list_saved_queries(self, user: User) -> List[Dict[str, Any]]:
        stmt = select(SavedQuery)
        if user.role != UserRole.ADMIN:
            stmt = stmt.where(SavedQuery.created_by == user.id)
        result = await self.db.execute(stmt.order_by(SavedQuery.created_at.desc()))
        return [row_to_dict(q) for q in result.scalars().all()]

    async def _get_saved_query(self, user: User, query_id: str) -> SavedQuery:
        saved = await self.db.get(SavedQuery, query_id)
        if not saved:
            raise SavedQueryNotFoundError(query_id)
        if user.role != UserRole.ADMIN and saved.created_by != user.id:
            raise AuthorizationError("You can only use your own saved queries")
        return saved

    async def create_saved_query(self, user: User, name: str, config: Dict[str, Any],
                                 description: Optional[str] = None) -> Dict[str, Any]:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Query name is required", field="name")
        saved = SavedQuery(name=name, description=description, config=config, created_by=user.id)
        self.db.add(saved)
        await self.db.commit()
        return row_to_dict(saved)

    async def update_saved_query(self, user: User, query_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        saved = await self._get_saved_query(user, query_id)
        if changes.get("name") is not None:
            name = changes["name"].strip()
            if not name:
                raise ValidationError("Query name is required", field="name")
            saved.name = name
        if changes.get("description") is not None:
            saved.description = changes["description"]
        if changes.get("config") is not None:
            saved.config = changes["config"]
        await self.db.commit()
        return row_to_dict(saved)

    async def delete_saved_query(self, user: User, query_id: str) -> None:
        saved = await self._get_saved_query(user, query_id)
        await self.db.delete(saved)
        await self.db.commit()

    async def run_saved_query(self, user: User, query_id: str) -> Dict[str, Any]:
        saved = await self._get_saved_query(user, query_id)
        return await self.build_academic_report(user, saved.config or {})
