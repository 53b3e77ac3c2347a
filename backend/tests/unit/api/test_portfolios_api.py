"""
API Tests for portfolios
Templates, sections, student instances, publishing and auto-populated values
"""
import pytest
from httpx import AsyncClient

API = "/api/v1/portfolios"


@pytest.fixture
async def template(client: AsyncClient, instructor_auth_headers):
    response = await client.post(
        f"{API}/templates",
        json={"name": "Clinical Portfolio", "description": "End of term portfolio"},
        headers=instructor_auth_headers
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
async def reflection_section(client: AsyncClient, template, instructor_auth_headers):
    response = await client.put(
        f"{API}/templates/{template['id']}/sections",
        json={
            "name": "Reflection",
            "fields": [
                {"name": "summary", "label": "Summary", "field_type": "longtext", "is_required": True},
                {"name": "goals", "label": "Goals"},
            ],
        },
        headers=instructor_auth_headers
    )
    assert response.status_code == 200
    return response.json()


@pytest.fixture
async def portfolio(client: AsyncClient, template, reflection_section, auth_headers):
    response = await client.post(f"{API}", json={"template_id": template["id"]}, headers=auth_headers)
    assert response.status_code == 201
    return response.json()


class TestTemplates:
    async def test_section_fields_keep_order(self, client: AsyncClient, template, reflection_section, auth_headers):
        detail = (await client.get(f"{API}/templates/{template['id']}", headers=auth_headers)).json()
        section = detail["sections"][0]
        assert section["name"] == "Reflection"
        assert [f["name"] for f in section["fields"]] == ["summary", "goals"]
        assert [f["order_index"] for f in section["fields"]] == [0, 1]

    async def test_update_section_drops_missing_fields(
        self, client: AsyncClient, template, reflection_section, instructor_auth_headers
    ):
        summary = reflection_section["fields"][0]
        response = await client.put(
            f"{API}/templates/{template['id']}/sections",
            json={
                "id": reflection_section["id"],
                "name": "Reflection",
                "fields": [{"id": summary["id"], "name": "summary", "label": "Term summary", "is_required": True}],
            },
            headers=instructor_auth_headers
        )
        assert response.status_code == 200
        fields = response.json()["fields"]
        assert [(f["id"], f["label"]) for f in fields] == [(summary["id"], "Term summary")]

    async def test_field_needs_label(self, client: AsyncClient, template, instructor_auth_headers):
        response = await client.put(
            f"{API}/templates/{template['id']}/sections",
            json={"name": "Broken", "fields": [{"name": "x", "label": " "}]},
            headers=instructor_auth_headers
        )
        assert response.status_code == 400

    async def test_unknown_field_type(self, client: AsyncClient, template, instructor_auth_headers):
        response = await client.put(
            f"{API}/templates/{template['id']}/sections",
            json={"name": "Broken", "fields": [{"name": "x", "label": "X", "field_type": "slider"}]},
            headers=instructor_auth_headers
        )
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Unsupported field type: slider"

    async def test_reorder_sections(self, client: AsyncClient, template, reflection_section, instructor_auth_headers):
        second = (await client.put(
            f"{API}/templates/{template['id']}/sections",
            json={"name": "Evidence"},
            headers=instructor_auth_headers
        )).json()
        assert second["order_index"] == 1

        reordered = await client.post(
            f"{API}/templates/{template['id']}/sections/reorder",
            json={"section_ids": [second["id"], reflection_section["id"]]},
            headers=instructor_auth_headers
        )
        assert [s["name"] for s in reordered.json()] == ["Evidence", "Reflection"]

        partial = await client.post(
            f"{API}/templates/{template['id']}/sections/reorder",
            json={"section_ids": [second["id"]]},
            headers=instructor_auth_headers
        )
        assert partial.status_code == 400

    async def test_delete_section_renumbers(
        self, client: AsyncClient, template, reflection_section, instructor_auth_headers
    ):
        await client.put(
            f"{API}/templates/{template['id']}/sections", json={"name": "Evidence"}, headers=instructor_auth_headers
        )
        response = await client.delete(
            f"{API}/templates/{template['id']}/sections/{reflection_section['id']}", headers=instructor_auth_headers
        )
        assert response.status_code == 200

        detail = (await client.get(f"{API}/templates/{template['id']}", headers=instructor_auth_headers)).json()
        assert [(s["name"], s["order_index"]) for s in detail["sections"]] == [("Evidence", 0)]

    async def test_inactive_template_hidden(self, client: AsyncClient, template, auth_headers, instructor_auth_headers):
        await client.post(
            f"{API}/templates/{template['id']}/toggle", params={"is_active": False}, headers=instructor_auth_headers
        )
        assert (await client.get(f"{API}/templates", headers=auth_headers)).json() == []

        response = await client.post(f"{API}", json={"template_id": template["id"]}, headers=auth_headers)
        assert response.status_code == 400

    async def test_students_cannot_create_templates(self, client: AsyncClient, auth_headers):
        response = await client.post(f"{API}/templates", json={"name": "Mine"}, headers=auth_headers)
        assert response.status_code == 403


class TestInstances:
    async def test_instance_starts_as_draft(self, client: AsyncClient, portfolio, test_user):
        assert portfolio["status"] == "draft"
        assert portfolio["student_id"] == test_user.id

    async def test_publish_requires_required_fields(
        self, client: AsyncClient, portfolio, reflection_section, auth_headers
    ):
        response = await client.post(f"{API}/{portfolio['id']}/publish", headers=auth_headers)
        assert response.status_code == 422
        errors = response.json()["error"]["details"]["errors"]
        assert errors[0] == {"field": "summary", "message": "Summary is required"}
        assert errors[-1]["message"] == "Please fill in all required fields"

    async def test_save_and_publish(self, client: AsyncClient, portfolio, reflection_section, auth_headers):
        summary, goals = (f["id"] for f in reflection_section["fields"])
        saved = await client.put(
            f"{API}/{portfolio['id']}/data",
            json={"values": {summary: "Great term", goals: "Pass NCLEX"}},
            headers=auth_headers
        )
        assert saved.status_code == 200
        assert saved.json() == {summary: "Great term", goals: "Pass NCLEX"}

        await client.put(f"{API}/{portfolio['id']}/data", json={"values": {summary: "Great term!"}}, headers=auth_headers)

        published = await client.post(f"{API}/{portfolio['id']}/publish", headers=auth_headers)
        assert published.status_code == 200
        assert published.json()["status"] == "published"
        assert published.json()["published_at"] is not None

        detail = (await client.get(f"{API}/{portfolio['id']}", headers=auth_headers)).json()
        assert detail["data"][summary] == "Great term!"
        assert detail["template"]["sections"][0]["name"] == "Reflection"

    async def test_foreign_field_rejected(self, client: AsyncClient, portfolio, auth_headers):
        response = await client.put(
            f"{API}/{portfolio['id']}/data", json={"values": {"not-a-field": "x"}}, headers=auth_headers
        )
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Field does not belong to this portfolio"

    async def test_archived_is_read_only(self, client: AsyncClient, portfolio, reflection_section, auth_headers):
        archived = await client.post(f"{API}/{portfolio['id']}/archive", headers=auth_headers)
        assert archived.json()["status"] == "archived"

        summary = reflection_section["fields"][0]["id"]
        response = await client.put(
            f"{API}/{portfolio['id']}/data", json={"values": {summary: "late"}}, headers=auth_headers
        )
        assert response.status_code == 409

    async def test_instructor_creates_for_student(
        self, client: AsyncClient, template, test_user, instructor_auth_headers
    ):
        missing = await client.post(f"{API}", json={"template_id": template["id"]}, headers=instructor_auth_headers)
        assert missing.status_code == 400

        response = await client.post(
            f"{API}", json={"template_id": template["id"], "student_id": test_user.id},
            headers=instructor_auth_headers
        )
        assert response.status_code == 201

        listed = (await client.get(f"{API}", headers=instructor_auth_headers)).json()
        assert listed[0]["template_name"] == "Clinical Portfolio"

    async def test_delete_instance(self, client: AsyncClient, portfolio, auth_headers):
        response = await client.delete(f"{API}/{portfolio['id']}", headers=auth_headers)
        assert response.status_code == 200
        assert (await client.get(f"{API}/{portfolio['id']}", headers=auth_headers)).status_code == 404


class TestAutoPopulate:
    @pytest.fixture
    async def logged_skill(self, client: AsyncClient, instructor_auth_headers, auth_headers):
        category = (await client.post(
            "/api/v1/skills/categories", json={"name": "Assessment"}, headers=instructor_auth_headers
        )).json()
        skill = (await client.post(
            "/api/v1/skills", json={"name": "Head-to-toe", "category_id": category["id"]},
            headers=instructor_auth_headers
        )).json()
        for score in ("3", "5"):
            await client.post(
                "/api/v1/skills/logs",
                json={"skill_id": skill["id"], "evaluator_name": "Peer", "responses": {"score": score}},
                headers=auth_headers
            )
        return skill

    async def preview(self, client, headers, **config):
        return await client.post(f"{API}/auto-populate/preview", json={"config": config}, headers=headers)

    async def test_skill_count(self, client: AsyncClient, logged_skill, auth_headers):
        response = await self.preview(client, auth_headers, dataSource="skills", aggregation="count")
        assert response.json() == {"value": 2}

    async def test_skill_average_with_filter(self, client: AsyncClient, logged_skill, auth_headers):
        response = await self.preview(
            client, auth_headers, dataSource="skills", dataField="score", aggregation="average",
            filterConditions=[{"field": "skill_category_name", "operator": "equals", "value": "Assessment"}],
        )
        assert response.json()["value"] == 4

        response = await self.preview(
            client, auth_headers, dataSource="skills", aggregation="count",
            filterConditions=[{"field": "skill_name", "operator": "contains", "value": "vital"}],
        )
        assert response.json()["value"] == 0

    async def test_profile_value(self, client: AsyncClient, test_user, auth_headers):
        response = await self.preview(client, auth_headers, dataSource="user", dataField="full_name")
        assert response.json()["value"] == test_user.full_name

    async def test_invalid_source(self, client: AsyncClient, auth_headers):
        response = await self.preview(client, auth_headers, dataSource="grades")
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid data source"

    async def test_invalid_aggregation(self, client: AsyncClient, auth_headers):
        response = await self.preview(client, auth_headers, dataSource="clinical", aggregation="median")
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid aggregation type"
