"""
API Tests for clinical documentation
Flow: admin builds a form, assigns it down the chain, student documents a shift
"""
import pytest
from datetime import datetime, timedelta
from httpx import AsyncClient

from app.models.user import UserRole

API = "/api/v1/clinical"


def shift_payload(**overrides):
    now = datetime.utcnow()
    payload = {
        "location": "St. Mary's Hospital",
        "department": "Med-Surg",
        "shift_start": (now - timedelta(hours=1)).isoformat(),
        "shift_end": (now + timedelta(hours=7)).isoformat(),
        "preceptor_name": "RN Kim",
        "preceptor_credentials": "RN, BSN",
        "preceptor_email": "kim@example.com",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
async def med_pass_form(client: AsyncClient, admin_auth_headers):
    """Clinical type with a form holding a required text field and a select"""
    response = await client.post(
        f"{API}/types",
        json={"name": "Med Pass", "description": "Medication administration"},
        headers=admin_auth_headers
    )
    assert response.status_code == 201
    form = response.json()["form"]

    site = await client.post(
        f"{API}/forms/{form['id']}/fields",
        json={"field_name": "site", "field_type": "text", "field_label": "Administration Site", "required": True},
        headers=admin_auth_headers
    )
    assert site.status_code == 201

    route = await client.post(
        f"{API}/forms/{form['id']}/fields",
        json={"field_name": "route", "field_type": "select", "field_label": "Route",
              "field_options": ["PO", "IV", "IM"]},
        headers=admin_auth_headers
    )
    assert route.status_code == 201
    return {"form": form, "site": site.json(), "route": route.json()}


@pytest.fixture
async def assigned_form(client: AsyncClient, med_pass_form, instructor_user,
                        admin_auth_headers, instructor_auth_headers):
    form_id = med_pass_form["form"]["id"]
    response = await client.post(
        f"{API}/forms/{form_id}/assign-instructors",
        json={"instructor_ids": [instructor_user.id]},
        headers=admin_auth_headers
    )
    assert response.status_code == 201

    response = await client.post(
        f"{API}/forms/{form_id}/assign-students", json={}, headers=instructor_auth_headers
    )
    assert response.status_code == 201
    assert response.json()[0]["student_id"] is None
    return med_pass_form


class TestClinicalTypes:
    async def test_type_creates_named_form(self, client: AsyncClient, med_pass_form):
        form = med_pass_form["form"]
        assert form["name"] == "Med Pass Form"
        assert form["description"] == "Documentation form for Med Pass"

    async def test_list_types_ordered(self, client: AsyncClient, admin_auth_headers, auth_headers):
        for name in ("Wound Care", "Assessment"):
            await client.post(f"{API}/types", json={"name": name}, headers=admin_auth_headers)

        response = await client.get(f"{API}/types", headers=auth_headers)
        assert [t["name"] for t in response.json()] == ["Assessment", "Wound Care"]

    async def test_type_name_required(self, client: AsyncClient, admin_auth_headers):
        response = await client.post(f"{API}/types", json={"name": "  "}, headers=admin_auth_headers)
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Clinical type name is required"

    async def test_students_cannot_create_types(self, client: AsyncClient, auth_headers):
        response = await client.post(f"{API}/types", json={"name": "X"}, headers=auth_headers)
        assert response.status_code == 403


class TestFormFields:
    async def test_nested_field_tree(self, client: AsyncClient, med_pass_form, admin_auth_headers):
        form_id = med_pass_form["form"]["id"]
        child = await client.post(
            f"{API}/forms/{form_id}/fields",
            json={"field_name": "iv_gauge", "field_type": "number", "field_label": "IV Gauge",
                  "parent_field_id": med_pass_form["route"]["id"]},
            headers=admin_auth_headers
        )
        assert child.status_code == 201
        assert child.json()["order_index"] == 0

        response = await client.get(f"{API}/forms/{form_id}", headers=admin_auth_headers)
        tree = response.json()["fields"]
        assert [f["field_name"] for f in tree] == ["site", "route"]
        assert [f["field_name"] for f in tree[1]["subfields"]] == ["iv_gauge"]

    async def test_invalid_field_name(self, client: AsyncClient, med_pass_form, admin_auth_headers):
        response = await client.post(
            f"{API}/forms/{med_pass_form['form']['id']}/fields",
            json={"field_name": "bad name", "field_type": "text", "field_label": "Bad"},
            headers=admin_auth_headers
        )
        assert response.status_code == 400
        assert response.json()["error"]["details"]["field"] == "field_name"

    async def test_update_field_revalidated(self, client: AsyncClient, med_pass_form, admin_auth_headers):
        field_id = med_pass_form["route"]["id"]
        response = await client.put(
            f"{API}/fields/{field_id}", json={"field_options": []}, headers=admin_auth_headers
        )
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "At least one option is required for select fields"

        response = await client.put(
            f"{API}/fields/{field_id}", json={"field_label": "Route Given"}, headers=admin_auth_headers
        )
        assert response.json()["field_label"] == "Route Given"

    async def test_delete_field_removes_children(self, client: AsyncClient, med_pass_form, admin_auth_headers):
        form_id = med_pass_form["form"]["id"]
        parent_id = med_pass_form["route"]["id"]
        child = await client.post(
            f"{API}/forms/{form_id}/fields",
            json={"field_name": "iv_gauge", "field_type": "number", "field_label": "IV Gauge",
                  "parent_field_id": parent_id},
            headers=admin_auth_headers
        )

        response = await client.delete(f"{API}/fields/{parent_id}", headers=admin_auth_headers)
        assert set(response.json()["deleted_ids"]) == {parent_id, child.json()["id"]}

        fields = (await client.get(f"{API}/forms/{form_id}", headers=admin_auth_headers)).json()["fields"]
        assert [f["field_name"] for f in fields] == ["site"]

    async def test_field_cannot_move_under_its_subfield(
        self, client: AsyncClient, med_pass_form, admin_auth_headers, auth_headers
    ):
        form_id = med_pass_form["form"]["id"]
        site_id = med_pass_form["site"]["id"]
        side = (await client.post(
            f"{API}/forms/{form_id}/fields",
            json={"field_name": "side", "field_type": "text", "field_label": "Side", "parent_field_id": site_id},
            headers=admin_auth_headers
        )).json()
        nested = (await client.post(
            f"{API}/forms/{form_id}/fields",
            json={"field_name": "landmark", "field_type": "text", "field_label": "Landmark",
                  "parent_field_id": side["id"]},
            headers=admin_auth_headers
        )).json()

        for descendant in (side, nested):
            response = await client.put(
                f"{API}/fields/{site_id}", json={"parent_field_id": descendant["id"]}, headers=admin_auth_headers
            )
            assert response.status_code == 400
            assert response.json()["error"]["message"] == "A field cannot be nested under its own subfield"

        rendered = (await client.get(f"{API}/forms/{form_id}/render", headers=auth_headers)).json()["fields"]
        assert [f["name"] for f in rendered] == ["site", "route"]
        assert rendered[0]["required"] is True
        assert [f["name"] for f in rendered[0]["subfields"]] == ["side"]

    async def test_move_field_back_to_top_level(self, client: AsyncClient, med_pass_form, admin_auth_headers):
        form_id = med_pass_form["form"]["id"]
        child = (await client.post(
            f"{API}/forms/{form_id}/fields",
            json={"field_name": "iv_gauge", "field_type": "number", "field_label": "IV Gauge",
                  "parent_field_id": med_pass_form["route"]["id"], "order_index": 2},
            headers=admin_auth_headers
        )).json()

        response = await client.put(
            f"{API}/fields/{child['id']}", json={"parent_field_id": None}, headers=admin_auth_headers
        )
        assert response.status_code == 200
        assert response.json()["parent_field_id"] is None
        assert response.json()["field_label"] == "IV Gauge"

        tree = (await client.get(f"{API}/forms/{form_id}", headers=admin_auth_headers)).json()["fields"]
        assert [f["field_name"] for f in tree] == ["site", "route", "iv_gauge"]
        assert tree[1]["subfields"] == []

    async def test_render(self, client: AsyncClient, med_pass_form, auth_headers):
        response = await client.get(f"{API}/forms/{med_pass_form['form']['id']}/render", headers=auth_headers)
        site, route = response.json()["fields"]
        assert site["widget"] == "input" and site["required"] is True
        assert route["options"] == ["PO", "IV", "IM"]


class TestShiftsAndEntries:
    async def test_unassigned_form_rejected(self, client: AsyncClient, med_pass_form, auth_headers):
        await client.post(f"{API}/shifts", json=shift_payload(), headers=auth_headers)
        response = await client.post(
            f"{API}/entries",
            json={"form_id": med_pass_form["form"]["id"], "form_data": {"site": "Left deltoid"}},
            headers=auth_headers
        )
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORM_NOT_ASSIGNED"

    async def test_shift_required(self, client: AsyncClient, assigned_form, auth_headers):
        response = await client.post(
            f"{API}/entries",
            json={"form_id": assigned_form["form"]["id"], "form_data": {"site": "Left deltoid"}},
            headers=auth_headers
        )
        assert response.status_code == 400
        assert response.json()["error"]["message"] == (
            "Please start a clinical shift before submitting documentation"
        )

    async def test_shift_end_before_start(self, client: AsyncClient, auth_headers):
        now = datetime.utcnow()
        response = await client.post(
            f"{API}/shifts",
            json=shift_payload(shift_start=now.isoformat(), shift_end=(now - timedelta(hours=1)).isoformat()),
            headers=auth_headers
        )
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Shift end time must be after start time"

    async def test_new_shift_ends_previous(self, client: AsyncClient, auth_headers):
        first = (await client.post(f"{API}/shifts", json=shift_payload(), headers=auth_headers)).json()
        second = (await client.post(
            f"{API}/shifts", json=shift_payload(location="Clinic B"), headers=auth_headers
        )).json()

        active = (await client.get(f"{API}/shifts/active", headers=auth_headers)).json()
        assert active["shift"]["id"] == second["id"]
        assert active["shift"]["id"] != first["id"]

    async def test_missing_required_field(self, client: AsyncClient, assigned_form, auth_headers):
        await client.post(f"{API}/shifts", json=shift_payload(), headers=auth_headers)
        response = await client.post(
            f"{API}/entries",
            json={"form_id": assigned_form["form"]["id"], "form_data": {"route": "PO"}},
            headers=auth_headers
        )
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Please fill in required field: Administration Site"

    async def test_invalid_option(self, client: AsyncClient, assigned_form, auth_headers):
        await client.post(f"{API}/shifts", json=shift_payload(), headers=auth_headers)
        response = await client.post(
            f"{API}/entries",
            json={"form_id": assigned_form["form"]["id"], "form_data": {"site": "Arm", "route": "SQ"}},
            headers=auth_headers
        )
        assert response.status_code == 422
        assert response.json()["error"]["details"]["errors"][0]["field"] == "route"

    async def test_full_documentation_flow(
        self, client: AsyncClient, assigned_form, test_user, auth_headers, instructor_auth_headers
    ):
        form_id = assigned_form["form"]["id"]
        await client.post(f"{API}/shifts", json=shift_payload(), headers=auth_headers)

        draft = await client.put(
            f"{API}/drafts",
            json={"clinical_type_id": assigned_form["form"]["clinical_type_id"], "form_id": form_id,
                  "form_data": {"site": "Left deltoid"}},
            headers=auth_headers
        )
        assert draft.status_code == 200
        assert len((await client.get(f"{API}/drafts", headers=auth_headers)).json()) == 1

        response = await client.post(
            f"{API}/entries",
            json={"form_id": form_id, "form_data": {"site": "Left deltoid", "route": "IM"}},
            headers=auth_headers
        )
        assert response.status_code == 201
        entry = response.json()
        assert entry["location"] == "St. Mary's Hospital"
        assert entry["preceptor_name"] == "RN Kim"
        assert entry["student_id"] == test_user.id

        # Submitting clears the draft for that form
        assert (await client.get(f"{API}/drafts", headers=auth_headers)).json() == []

        active = (await client.get(f"{API}/shifts/active", headers=auth_headers)).json()
        assert [e["id"] for e in active["entries"]] == [entry["id"]]

        entries = (await client.get(f"{API}/entries", headers=instructor_auth_headers)).json()
        assert [e["id"] for e in entries] == [entry["id"]]

        reviewed = await client.post(f"{API}/entries/{entry['id']}/review", headers=instructor_auth_headers)
        assert reviewed.json()["reviewed_by"] is not None
        assert reviewed.json()["reviewed_at"] is not None

        ended = await client.post(f"{API}/shifts/end", headers=auth_headers)
        assert ended.json()["is_active"] is False

    async def test_type_with_entries_cannot_be_deleted(
        self, client: AsyncClient, assigned_form, auth_headers, admin_auth_headers
    ):
        await client.post(f"{API}/shifts", json=shift_payload(), headers=auth_headers)
        await client.post(
            f"{API}/entries",
            json={"form_id": assigned_form["form"]["id"], "form_data": {"site": "Arm"}},
            headers=auth_headers
        )

        response = await client.delete(
            f"{API}/types/{assigned_form['form']['clinical_type_id']}", headers=admin_auth_headers
        )
        assert response.status_code == 409

    async def test_deactivated_assignment_hides_form(
        self, client: AsyncClient, assigned_form, auth_headers, instructor_auth_headers
    ):
        assignments = (await client.get(f"{API}/assignments", headers=instructor_auth_headers)).json()
        for assignment in assignments:
            response = await client.patch(
                f"{API}/assignments/{assignment['id']}", json={"status": "inactive"},
                headers=instructor_auth_headers
            )
            assert response.status_code == 200

        forms = (await client.get(f"{API}/forms", headers=auth_headers)).json()
        assert forms == []

    async def test_other_cohort_cannot_see_entries(
        self, client: AsyncClient, assigned_form, auth_headers, user_factory, token_headers
    ):
        other_instructor = await user_factory(UserRole.INSTRUCTOR, instructor_code="OTHER001")
        await client.post(f"{API}/shifts", json=shift_payload(), headers=auth_headers)
        await client.post(
            f"{API}/entries",
            json={"form_id": assigned_form["form"]["id"], "form_data": {"site": "Arm"}},
            headers=auth_headers
        )

        entries = (await client.get(f"{API}/entries", headers=token_headers(other_instructor))).json()
        assert entries == []
