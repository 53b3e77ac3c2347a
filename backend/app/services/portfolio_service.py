"""
Portfolio Service
Templates built from ordered sections of fields, student portfolio instances
and auto-populated field values drawn from skills, clinical entries or the
student profile
"""

from typing import List, Optional, Dict, Any

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ConflictError,
    FieldError,
    PortfolioNotFoundError,
    PortfolioTemplateNotFoundError,
    ResourceNotFoundError,
    ValidationError,
    ValidationErrors,
)
from app.core.logging_config import logger
from app.core.types import utcnow
from app.models.clinical import ClinicalEntry, ClinicalForm, ClinicalType
from app.models.portfolio import (
    PortfolioTemplate, PortfolioSection, PortfolioField, PortfolioInstance,
    PortfolioData, PortfolioFieldType, PortfolioStatus
)
from app.models.skill import Skill, SkillCategory, SkillLog
from app.models.user import User, UserRole
from app.services.access import ensure_can_view_student, get_student, visible_student_ids
from app.services.data_access import row_to_dict
from app.services.form_tree import is_empty_response

DATA_SOURCES = ("skills", "clinical", "user")
AGGREGATIONS = ("count", "sum", "average", "latest")
FILTER_OPERATORS = ("equals", "not_equals", "greater_than", "less_than", "contains")
FIELD_TYPES = {t.value for t in PortfolioFieldType}


# =====================================================
# AUTO-POPULATED VALUES
# =====================================================

def _as_number(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _column_matches(row: Dict[str, Any], condition: Dict[str, Any]) -> bool:
    """Filter on the row's own columns the way a SQL comparison would"""
    operator = condition.get("operator")
    expected = condition.get("value")
    actual = row.get(condition.get("field"))

    if operator not in FILTER_OPERATORS:
        return True
    if actual is None:
        return operator == "not_equals"

    if operator == "equals":
        return str(actual) == str(expected)
    if operator == "not_equals":
        return str(actual) != str(expected)
    if operator == "contains":
        return str(expected).lower() in str(actual).lower()

    try:
        left, right = float(actual), float(expected)
    except (TypeError, ValueError):
        left, right = str(actual), str(expected)
    return left > right if operator == "greater_than" else left < right


def aggregate(rows: List[Dict[str, Any]], container: str, data_field: str, aggregation: str) -> Any:
    """Reduce source rows to a single portfolio value"""
    if aggregation == "count":
        return len(rows)

    values = [(row.get(container) or {}).get(data_field) for row in rows]

    if aggregation == "sum":
        return sum(_as_number(v) for v in values)
    if aggregation == "average":
        return sum(_as_number(v) for v in values) / len(rows) if rows else 0
    if aggregation == "latest":
        if not rows:
            return None
        latest = max(rows, key=lambda r: r.get("submitted_at") or "")
        return (latest.get(container) or {}).get(data_field)

    raise ValidationError("Invalid aggregation type", field="aggregation")


class PortfolioService:
    """Service for portfolio templates and instances"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =====================================================
    # TEMPLATES
    # =====================================================

    async def create_template(self, creator: User, name: str,
                              description: Optional[str] = None) -> Dict[str, Any]:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Template name is required", field="name")
        template = PortfolioTemplate(name=name, description=description, created_by=creator.id)
        self.db.add(template)
        await self.db.commit()
        return row_to_dict(template)

    async def list_templates(self, include_inactive: bool = False) -> List[Dict[str, Any]]:
        stmt = select(PortfolioTemplate)
        if not include_inactive:
            stmt = stmt.where(PortfolioTemplate.is_active == True)
        result = await self.db.execute(stmt.order_by(PortfolioTemplate.name))
        return [row_to_dict(t) for t in result.scalars().all()]

    async def _get_template(self, template_id: str) -> PortfolioTemplate:
        template = await self.db.get(PortfolioTemplate, template_id)
        if not template:
            raise PortfolioTemplateNotFoundError(template_id)
        return template

    async def _sections(self, template_id: str) -> List[PortfolioSection]:
        result = await self.db.execute(
            select(PortfolioSection)
            .where(PortfolioSection.template_id == template_id)
            .order_by(PortfolioSection.order_index)
        )
        return list(result.scalars().all())

    async def _fields(self, section_ids: List[str]) -> List[PortfolioField]:
        if not section_ids:
            return []
        result = await self.db.execute(
            select(PortfolioField)
            .where(PortfolioField.section_id.in_(section_ids))
            .order_by(PortfolioField.order_index)
        )
        return list(result.scalars().all())

    async def get_template(self, template_id: str) -> Dict[str, Any]:
        """Template with ordered sections, each carrying its ordered fields"""
        template = await self._get_template(template_id)
        sections = await self._sections(template_id)
        fields = await self._fields([s.id for s in sections])

        by_section: Dict[str, List[Dict[str, Any]]] = {}
        for field in fields:
            by_section.setdefault(field.section_id, []).append(row_to_dict(field))

        return {
            **row_to_dict(template),
            "sections": [
                {**row_to_dict(s), "fields": by_section.get(s.id, [])} for s in sections
            ],
        }

    async def set_template_active(self, template_id: str, is_active: bool) -> Dict[str, Any]:
        template = await self._get_template(template_id)
        template.is_active = is_active
        await self.db.commit()
        return row_to_dict(template)

    # =====================================================
    # SECTIONS
    # =====================================================

    async def save_section(self, template_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create or update a section and replace its field list.

        Field order follows the payload order; fields missing from an update
        are deleted.
        """
        await self._get_template(template_id)
        name = (payload.get("name") or "").strip()
        if not name:
            raise ValidationError("Section name is required", field="name")

        incoming = payload.get("fields") or []
        for field in incoming:
            if not (field.get("name") or "").strip() or not (field.get("label") or "").strip():
                raise ValidationError("Every field needs a name and a label", field="fields")
            if (field.get("field_type") or "text") not in FIELD_TYPES:
                raise ValidationError(f"Unsupported field type: {field.get('field_type')}", field="fields")

        section_id = payload.get("id")
        if section_id:
            section = await self.db.get(PortfolioSection, section_id)
            if not section or section.template_id != template_id:
                raise ResourceNotFoundError("Portfolio section", section_id)
            section.name = name
            section.description = payload.get("description")

            existing = {f.id: f for f in await self._fields([section.id])}
            keep = {f.get("id") for f in incoming if f.get("id")}
            stale = [fid for fid in existing if fid not in keep]
            if stale:
                await self.db.execute(delete(PortfolioData).where(PortfolioData.field_id.in_(stale)))
                await self.db.execute(delete(PortfolioField).where(PortfolioField.id.in_(stale)))
        else:
            count = await self.db.execute(
                select(func.count(PortfolioSection.id)).where(PortfolioSection.template_id == template_id)
            )
            section = PortfolioSection(
                template_id=template_id,
                name=name,
                description=payload.get("description"),
                order_index=count.scalar() or 0,
                is_required=False,
            )
            self.db.add(section)
            await self.db.flush()
            existing = {}

        for position, field in enumerate(incoming):
            values = {
                "name": field["name"].strip(),
                "label": field["label"].strip(),
                "field_type": field.get("field_type") or "text",
                "is_required": bool(field.get("is_required")),
                "options": field.get("options") or {},
                "validation_rules": field.get("validation_rules") or {},
                "order_index": position,
            }
            current = existing.get(field.get("id"))
            if current is not None:
                for key, value in values.items():
                    setattr(current, key, value)
            else:
                self.db.add(PortfolioField(section_id=section.id, **values))

        await self.db.commit()
        fields = await self._fields([section.id])
        return {**row_to_dict(section), "fields": [row_to_dict(f) for f in fields]}

    async def delete_section(self, template_id: str, section_id: str) -> None:
        section = await self.db.get(PortfolioSection, section_id)
        if not section or section.template_id != template_id:
            raise ResourceNotFoundError("Portfolio section", section_id)
        if section.is_required:
            raise ConflictError("Required sections cannot be deleted")

        field_ids = [f.id for f in await self._fields([section_id])]
        if field_ids:
            await self.db.execute(delete(PortfolioData).where(PortfolioData.field_id.in_(field_ids)))
            await self.db.execute(delete(PortfolioField).where(PortfolioField.id.in_(field_ids)))
        await self.db.delete(section)
        await self.db.flush()

        for position, remaining in enumerate(await self._sections(template_id)):
            remaining.order_index = position
        await self.db.commit()

    async def reorder_sections(self, template_id: str, ordered_ids: List[str]) -> List[Dict[str, Any]]:
        sections = {s.id: s for s in await self._sections(template_id)}
        if set(ordered_ids) != set(sections):
            raise ValidationError("Section order must list every section exactly once", field="section_ids")
        for position, section_id in enumerate(ordered_ids):
            sections[section_id].order_index = position
        await self.db.commit()
        return [row_to_dict(s) for s in await self._sections(template_id)]

    # =====================================================
    # INSTANCES
    # =====================================================

    async def create_instance(self, user: User, template_id: str,
                              student_id: Optional[str] = None) -> Dict[str, Any]:
        template = await self._get_template(template_id)
        if not template.is_active:
            raise ValidationError("This portfolio template is not active", field="template_id")

        if user.role == UserRole.STUDENT:
            student_id = user.id
        elif not student_id:
            raise ValidationError("Student is required", field="student_id")
        else:
            await get_student(self.db, student_id)
            await ensure_can_view_student(self.db, user, student_id)

        instance = PortfolioInstance(
            template_id=template_id, student_id=student_id, status=PortfolioStatus.DRAFT
        )
        self.db.add(instance)
        await self.db.commit()
        return row_to_dict(instance)

    async def list_instances(self, user: User) -> List[Dict[str, Any]]:
        stmt = select(PortfolioInstance, PortfolioTemplate.name).join(
            PortfolioTemplate, PortfolioTemplate.id == PortfolioInstance.template_id
        )
        allowed = await visible_student_ids(self.db, user)
        if allowed is not None:
            stmt = stmt.where(PortfolioInstance.student_id.in_(allowed))
        result = await self.db.execute(stmt.order_by(PortfolioInstance.updated_at.desc()))
        return [
            {**row_to_dict(instance), "template_name": name}
            for instance, name in result.all()
        ]

    async def _get_instance(self, user: User, instance_id: str) -> PortfolioInstance:
        instance = await self.db.get(PortfolioInstance, instance_id)
        if not instance:
            raise PortfolioNotFoundError(instance_id)
        await ensure_can_view_student(self.db, user, instance.student_id)
        return instance

    async def _values(self, instance_id: str) -> Dict[str, Any]:
        result = await self.db.execute(
            select(PortfolioData).where(PortfolioData.instance_id == instance_id)
        )
        return {d.field_id: d.value for d in result.scalars().all()}

    async def get_instance(self, user: User, instance_id: str) -> Dict[str, Any]:
        instance = await self._get_instance(user, instance_id)
        return {
            **row_to_dict(instance),
            "template": await self.get_template(instance.template_id),
            "data": await self._values(instance.id),
        }

    async def save_data(self, user: User, instance_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """Upsert one value per field"""
        instance = await self._get_instance(user, instance_id)
        if instance.status == PortfolioStatus.ARCHIVED:
            raise ConflictError("Archived portfolios cannot be edited")

        sections = await self._sections(instance.template_id)
        field_ids = {f.id for f in await self._fields([s.id for s in sections])}
        unknown = [fid for fid in values if fid not in field_ids]
        if unknown:
            raise ValidationError("Field does not belong to this portfolio", field=unknown[0])

        result = await self.db.execute(
            select(PortfolioData).where(PortfolioData.instance_id == instance.id)
        )
        existing = {d.field_id: d for d in result.scalars().all()}
        for field_id, value in values.items():
            if field_id in existing:
                existing[field_id].value = value
            else:
                self.db.add(PortfolioData(instance_id=instance.id, field_id=field_id, value=value))

        instance.updated_at = utcnow()
        await self.db.commit()
        return await self._values(instance.id)

    async def publish(self, user: User, instance_id: str) -> Dict[str, Any]:
        instance = await self._get_instance(user, instance_id)
        sections = await self._sections(instance.template_id)
        fields = await self._fields([s.id for s in sections])
        values = await self._values(instance.id)

        missing = [
            FieldError(f.name, f"{f.label} is required")
            for f in fields
            if f.is_required and is_empty_response(values.get(f.id))
        ]
        if missing:
            missing.append(FieldError("portfolio", "Please fill in all required fields"))
            raise ValidationErrors(missing)

        instance.status = PortfolioStatus.PUBLISHED
        instance.published_at = utcnow()
        await self.db.commit()
        logger.log_submission("Portfolio", instance.id, instance.student_id, template_id=instance.template_id)
        return row_to_dict(instance)

    async def archive(self, user: User, instance_id: str) -> Dict[str, Any]:
        instance = await self._get_instance(user, instance_id)
        instance.status = PortfolioStatus.ARCHIVED
        await self.db.commit()
        return row_to_dict(instance)

    async def delete_instance(self, user: User, instance_id: str) -> None:
        instance = await self._get_instance(user, instance_id)
        await self.db.execute(delete(PortfolioData).where(PortfolioData.instance_id == instance.id))
        await self.db.delete(instance)
        await self.db.commit()

    # =====================================================
    # AUTO-POPULATION
    # =====================================================

    async def _skill_rows(self, student_id: str) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(SkillLog, Skill.name, SkillCategory.name)
            .join(Skill, Skill.id == SkillLog.skill_id)
            .outerjoin(SkillCategory, SkillCategory.id == Skill.category_id)
            .where(SkillLog.student_id == student_id)
        )
        return [
            {
                "skill_id": log.skill_id,
                "skill_name": skill_name,
                "skill_category_name": category_name,
                "submitted_at": log.submitted_at.isoformat() if log.submitted_at else None,
                "status": log.status.value if log.status else None,
                "responses": log.responses or {},
            }
            for log, skill_name, category_name in result.all()
        ]

    async def _clinical_rows(self, student_id: str) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(ClinicalEntry, ClinicalType.name, ClinicalForm.name)
            .join(ClinicalForm, ClinicalForm.id == ClinicalEntry.form_id)
            .join(ClinicalType, ClinicalType.id == ClinicalEntry.clinical_type_id)
            .where(ClinicalEntry.student_id == student_id)
        )
        return [
            {
                "form_id": entry.form_id,
                "clinical_type_name": type_name,
                "form_name": form_name,
                "submitted_at": entry.submitted_at.isoformat() if entry.submitted_at else None,
                "form_data": entry.form_data or {},
            }
            for entry, type_name, form_name in result.all()
        ]

    async def get_portfolio_data(self, student_id: str, config: Dict[str, Any]) -> Any:
        """Value of an auto-populated portfolio field for one student"""
        source = config.get("dataSource")
        data_field = config.get("dataField") or ""

        if source == "user":
            profile = row_to_dict(await get_student(self.db, student_id))
            profile.pop("hashed_password", None)
            return profile.get(data_field)

        if source == "skills":
            rows, container = await self._skill_rows(student_id), "responses"
        elif source == "clinical":
            rows, container = await self._clinical_rows(student_id), "form_data"
        else:
            raise ValidationError("Invalid data source", field="dataSource")

        aggregation = config.get("aggregation")
        if aggregation not in AGGREGATIONS:
            raise ValidationError("Invalid aggregation type", field="aggregation")

        for condition in config.get("filterConditions") or []:
            rows = [r for r in rows if _column_matches(r, condition)]

        return aggregate(rows, container, data_field, aggregation)

    async def preview_field_value(self, user: User, config: Dict[str, Any],
                                  student_id: Optional[str] = None) -> Any:
        target = student_id or user.id
        await ensure_can_view_student(self.db, user, target)
        return await self.get_portfolio_data(target, config)
