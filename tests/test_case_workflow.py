import pytest
from httpx import AsyncClient

from casework.auth.models import UserRole
from casework.cases.models import CaseStatus


@pytest.mark.asyncio
async def test_full_review_and_validation_scenario(async_client: AsyncClient, make_user, headers_for):
    a = headers_for(await make_user(UserRole.ANALYST, name="a"))
    b = headers_for(await make_user(UserRole.ANALYST, name="b"))
    c = headers_for(await make_user(UserRole.ANALYST, name="c"))
    d = headers_for(await make_user(UserRole.ANALYST, name="d"))

    response = await async_client.post(
        "/v1/cases",
        json={"record_type": "incident", "title": "Case #1",
              "fields": {"subject_name": "Jane Doe", "incident_date": "2024-01-01"}},
        headers=a,
    )
    assert response.status_code == 201
    case_id = response.json()["id"]
    assert response.json()["status"] == "pending_review"
    assert response.json()["review_cycle"] == 1

    response = await async_client.post(f"/v1/cases/{case_id}/review", json={}, headers=a)
    assert response.status_code == 403

    response = await async_client.post(f"/v1/cases/{case_id}/review", json={}, headers=b)
    assert response.status_code == 200
    assert response.json()["case"]["status"] == "first_review"

    response = await async_client.post(f"/v1/cases/{case_id}/review", json={}, headers=b)
    assert response.status_code == 403
    assert response.json()["error"] == "authorization"

    response = await async_client.post(f"/v1/cases/{case_id}/review", json={}, headers=c)
    assert response.json()["case"]["status"] == "second_review"

    response = await async_client.post(f"/v1/cases/{case_id}/validate", json={"action": "validate"}, headers=a)
    assert response.status_code == 403
    assert response.json()["detail"] == "Cannot validate your own submission"

    response = await async_client.post(f"/v1/cases/{case_id}/validate", json={"action": "validate"}, headers=b)
    assert response.status_code == 200
    assert response.json()["case"]["status"] == "first_validation"

    response = await async_client.post(f"/v1/cases/{case_id}/validate", json={"action": "validate"}, headers=b)
    assert response.status_code == 403

    response = await async_client.post(f"/v1/cases/{case_id}/validate", json={"action": "validate"}, headers=d)
    assert response.status_code == 200
    body = response.json()["case"]
    assert body["status"] == "verified"
    assert body["verified"] is True

    response = await async_client.get(f"/v1/cases/{case_id}/history", headers=a)
    history = response.json()
    assert [entry["verification_number"] for entry in history] == [1, 2, 3, 4, 5]
    assert [entry["action"] for entry in history] == [
        "submitted", "first_review", "second_review", "first_validation", "verified",
    ]


@pytest.mark.asyncio
async def test_validate_requires_validation_ready_status(async_client: AsyncClient, make_user, make_case, headers_for):
    submitter = await make_user(UserRole.EDITOR)
    analyst = headers_for(await make_user(UserRole.ANALYST))
    case = await make_case(submitter, status=CaseStatus.PENDING_REVIEW)
    case_id = case.id

    response = await async_client.post(f"/v1/cases/{case_id}/validate", json={"action": "validate"}, headers=analyst)
    assert response.status_code == 400
    assert response.json()["error"] == "state_conflict"


@pytest.mark.asyncio
async def test_validate_rejects_issues_and_unknown_action(async_client: AsyncClient, make_user, make_case, headers_for):
    submitter = await make_user(UserRole.EDITOR)
    analyst = headers_for(await make_user(UserRole.ANALYST))
    case = await make_case(submitter, status=CaseStatus.SECOND_REVIEW)
    case_id = case.id

    response = await async_client.post(
        f"/v1/cases/{case_id}/validate",
        json={"action": "validate", "issues": [{"field_type": "field", "field_name": "city", "reason": "x"}]},
        headers=analyst,
    )
    assert response.status_code == 400
    assert response.json()["error"] == "validation"

    response = await async_client.post(f"/v1/cases/{case_id}/validate", json={"action": "publish"}, headers=analyst)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_return_to_review_records_issue_batch(async_client: AsyncClient, make_user, make_case, headers_for):
    submitter = await make_user(UserRole.EDITOR)
    validator = headers_for(await make_user(UserRole.ANALYST, name="validator"))
    reviewer = headers_for(await make_user(UserRole.ANALYST, name="reviewer"))
    case = await make_case(submitter, status=CaseStatus.SECOND_REVIEW)
    case_id = case.id
    url = f"/v1/cases/{case_id}/validate"

    response = await async_client.post(url, json={"action": "return_to_review", "issues": []}, headers=validator)
    assert response.status_code == 400

    response = await async_client.post(
        url,
        json={"action": "return_to_review",
              "issues": [{"field_type": "photo", "field_name": "city", "reason": "Wrong"}]},
        headers=validator,
    )
    assert response.status_code == 400

    response = await async_client.post(
        url,
        json={"action": "return_to_review", "issues": [
            {"field_type": "field", "field_name": "city", "reason": "City does not match source"},
            {"field_type": "quote", "field_name": "q-12", "reason": "Quote is paraphrased"},
        ]},
        headers=validator,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["case"]["status"] == "first_review"
    assert body["case"]["review_cycle"] == 2
    assert body["case"]["first_validated_by"] is None
    session_id = body["validation_session_id"]

    response = await async_client.get(f"/v1/cases/{case_id}/validation-issues", headers=reviewer)
    issues = response.json()
    assert len(issues) == 2
    assert {issue["validation_session_id"] for issue in issues} == {session_id}

    # Second review clears the open issues
    response = await async_client.post(f"/v1/cases/{case_id}/review", json={}, headers=reviewer)
    assert response.json()["case"]["status"] == "second_review"
    response = await async_client.get(f"/v1/cases/{case_id}/validation-issues", headers=reviewer)
    assert response.json() == []

    response = await async_client.post(
        url,
        json={"action": "return_to_review",
              "issues": [{"field_type": "source", "field_name": "s-1", "reason": "Dead link"}]},
        headers=validator,
    )
    assert response.json()["validation_session_id"] == session_id + 1
    assert response.json()["case"]["review_cycle"] == 3


@pytest.mark.asyncio
async def test_return_to_review_invalidates_field_verifications(async_client: AsyncClient, make_user, make_case, headers_for):
    submitter = await make_user(UserRole.EDITOR)
    first = headers_for(await make_user(UserRole.ANALYST, name="first"))
    second = headers_for(await make_user(UserRole.ANALYST, name="second"))
    case = await make_case(submitter, status=CaseStatus.SECOND_REVIEW)
    case_id = case.id

    await async_client.post(f"/v1/cases/{case_id}/verify-field", json={"field_name": "city"}, headers=first)
    response = await async_client.post(f"/v1/cases/{case_id}/verify-field", json={"field_name": "city"}, headers=second)
    assert response.json()["case_verification_status"] == "verified"

    await async_client.post(
        f"/v1/cases/{case_id}/validate",
        json={"action": "return_to_review",
              "issues": [{"field_type": "field", "field_name": "city", "reason": "Check again"}]},
        headers=first,
    )

    response = await async_client.get(f"/v1/cases/{case_id}/field-verifications", headers=first)
    [row] = response.json()
    assert row["verification_status"] == "unverified"
    assert row["invalidated_at"] is not None

    response = await async_client.get(f"/v1/cases/{case_id}", headers=first)
    assert response.json()["field_verification_status"] == "pending"


@pytest.mark.asyncio
async def test_reject_is_terminal(async_client: AsyncClient, make_user, make_case, headers_for):
    submitter = await make_user(UserRole.EDITOR)
    analyst = headers_for(await make_user(UserRole.ANALYST))
    other = headers_for(await make_user(UserRole.ANALYST))
    case = await make_case(submitter, status=CaseStatus.FIRST_VALIDATION)
    case_id = case.id
    url = f"/v1/cases/{case_id}/validate"

    response = await async_client.post(url, json={"action": "reject", "rejection_reason": "  "}, headers=analyst)
    assert response.status_code == 400

    response = await async_client.post(url, json={"action": "reject", "rejection_reason": "Fabricated"}, headers=analyst)
    assert response.status_code == 200
    assert response.json()["case"]["status"] == "rejected"
    assert response.json()["case"]["rejection_reason"] == "Fabricated"

    response = await async_client.post(f"/v1/cases/{case_id}/review", json={}, headers=other)
    assert response.status_code == 400
    response = await async_client.post(url, json={"action": "validate"}, headers=other)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_elevated_actor_bypasses_distinctness(async_client: AsyncClient, make_user, headers_for):
    admin = headers_for(await make_user(UserRole.ADMIN))

    response = await async_client.post(
        "/v1/cases", json={"record_type": "statement", "fields": {"headline": "Remarks"}}, headers=admin,
    )
    case_id = response.json()["id"]
    for _ in range(2):
        response = await async_client.post(f"/v1/cases/{case_id}/review", json={}, headers=admin)
        assert response.status_code == 200
    for _ in range(2):
        response = await async_client.post(f"/v1/cases/{case_id}/validate", json={"action": "validate"}, headers=admin)
        assert response.status_code == 200
    assert response.json()["case"]["status"] == "verified"


@pytest.mark.asyncio
async def test_unpublish_requires_admin_and_reason(async_client: AsyncClient, make_user, make_case, headers_for):
    submitter = await make_user(UserRole.EDITOR)
    analyst = headers_for(await make_user(UserRole.ANALYST))
    admin = headers_for(await make_user(UserRole.ADMIN))
    case = await make_case(submitter, status=CaseStatus.VERIFIED)
    case_id = case.id
    url = f"/v1/cases/{case_id}/unpublish"

    response = await async_client.post(url, json={"reason": "Retraction"}, headers=analyst)
    assert response.status_code == 403

    response = await async_client.post(url, json={}, headers=admin)
    assert response.status_code == 400

    response = await async_client.post(url, json={"reason": "Source retracted"}, headers=admin)
    assert response.status_code == 200
    body = response.json()["case"]
    assert body["status"] == "pending_review"
    assert body["verified"] is False
    assert body["review_cycle"] == 2


@pytest.mark.asyncio
async def test_submit_rejects_unknown_fields(async_client: AsyncClient, make_user, headers_for):
    editor = headers_for(await make_user(UserRole.EDITOR))
    viewer = headers_for(await make_user(UserRole.VIEWER))
    payload = {"record_type": "incident", "fields": {"subject_name": "X", "admin_override": True}}

    response = await async_client.post("/v1/cases", json=payload, headers=viewer)
    assert response.status_code == 403

    response = await async_client.post("/v1/cases", json=payload, headers=editor)
    assert response.status_code == 400
    assert "admin_override" in response.json()["detail"]


@pytest.mark.asyncio
async def test_review_queue_lists_returned_cases_first(async_client: AsyncClient, make_user, make_case, headers_for, db_session):
    submitter = await make_user(UserRole.EDITOR)
    analyst = headers_for(await make_user(UserRole.ANALYST))
    fresh = await make_case(submitter, status=CaseStatus.FIRST_REVIEW)
    returned = await make_case(submitter, status=CaseStatus.FIRST_REVIEW)
    returned.review_cycle = 2
    await db_session.commit()

    response = await async_client.get("/v1/cases", params={"status": "first_review"}, headers=analyst)
    ids = [item["id"] for item in response.json()]
    assert ids == [str(returned.id), str(fresh.id)]
