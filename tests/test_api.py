"""End-to-end tests for the CV analyzer HTTP API."""

import jwt

from cv_analyzer.api import deps
from cv_analyzer.api.app import app
from cv_analyzer.api.auth import JWT_ALGORITHM
from cv_analyzer.config import settings
from cv_analyzer.db.tables import Job
from cv_analyzer.errors import SchedulingError

BASE = "/api/v1/cv-analyzer"
FORM = {"experienceLevel": "mid", "major": "Computer Science"}


def upload(client, headers, content: bytes, data=None, filename="resume.pdf", content_type="application/pdf"):
    return client.post(
        f"{BASE}/upload",
        headers=headers,
        files={"cv": (filename, content, content_type)},
        data=data if data is not None else FORM,
    )


def upload_and_wait(client, headers, runner, content: bytes, data=None) -> str:
    response = upload(client, headers, content, data)
    assert response.status_code == 202, response.text
    analysis_id = response.json()["data"]["analysisId"]
    assert runner.wait(analysis_id, timeout=30)
    return analysis_id


def test_upload_to_completed_report(client, auth_headers, runner, cv_pdf):
    headers = auth_headers()
    response = upload(client, headers, cv_pdf)

    assert response.status_code == 202
    body = response.json()
    assert body["success"] is True
    assert body["data"]["status"] == "processing"
    assert body["data"]["estimatedCompletionTime"] == "2-3 minutes"

    analysis_id = body["data"]["analysisId"]
    assert runner.wait(analysis_id, timeout=30)

    result = client.get(f"{BASE}/results/{analysis_id}", headers=headers)
    assert result.status_code == 200
    data = result.json()["data"]
    assert data["status"] == "completed"
    assert data["overallScore"] == 78
    assert {
        "atsCompatibility",
        "skillsAlignment",
        "experienceRelevance",
        "achievementQuantification",
        "marketPositioning",
    } <= set(data["sections"])
    assert data["originalFilename"] == "resume.pdf"
    assert data["aiUsage"]["degraded"] is False
    assert data["user"]["email"] == "owner@example.com"


def test_image_only_upload_ends_failed(client, auth_headers, runner, image_only_pdf):
    headers = auth_headers()
    analysis_id = upload_and_wait(client, headers, runner, image_only_pdf)

    data = client.get(f"{BASE}/results/{analysis_id}", headers=headers).json()["data"]
    assert data["status"] == "failed"
    assert "Insufficient text" in data["errorMessage"]
    assert data["overallScore"] is None


def test_oversized_upload_rejected_without_record(client, auth_headers, store, users, monkeypatch, cv_pdf):
    monkeypatch.setattr(settings, "max_upload_bytes", 512)
    response = upload(client, auth_headers(), cv_pdf)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["field"] == "cv"
    assert "too large" in body["message"]
    assert store.list_by_owner(users["owner"])["totalDocs"] == 0


def test_non_pdf_upload_rejected(client, auth_headers):
    response = upload(client, auth_headers(), b"plain text", filename="resume.txt", content_type="text/plain")
    assert response.status_code == 400
    assert response.json()["field"] == "cv"


def test_pdf_extension_with_wrong_content_type_rejected(client, auth_headers, cv_pdf):
    response = upload(client, auth_headers(), cv_pdf, content_type="application/octet-stream")
    assert response.status_code == 400
    assert response.json()["field"] == "cv"


def test_empty_upload_rejected(client, auth_headers):
    response = upload(client, auth_headers(), b"")
    assert response.status_code == 400
    assert response.json()["field"] == "cv"


def test_missing_file_rejected(client, auth_headers):
    response = client.post(f"{BASE}/upload", headers=auth_headers(), data=FORM)
    assert response.status_code == 400
    assert response.json()["field"] == "cv"


def test_form_field_validation(client, auth_headers, cv_pdf):
    headers = auth_headers()

    response = upload(client, headers, cv_pdf, data={"experienceLevel": "guru", "major": "Computer Science"})
    assert response.status_code == 400
    assert response.json()["field"] == "experienceLevel"

    response = upload(client, headers, cv_pdf, data={"experienceLevel": "mid"})
    assert response.status_code == 400
    assert response.json()["field"] == "major"

    response = upload(client, headers, cv_pdf, data={**FORM, "jobId": "not-a-uuid"})
    assert response.status_code == 400
    assert response.json()["field"] == "jobId"

    response = upload(client, headers, cv_pdf, data={**FORM, "jobId": "6f1c2a52-0c5e-4d7b-9f0a-2d5a8e4b1c3d"})
    assert response.status_code == 400
    assert response.json()["field"] == "jobId"


def test_upload_with_job_target(client, auth_headers, runner, session_factory, store, cv_pdf):
    with session_factory() as db:
        job = Job(title="Backend Engineer", company="Acme", description="Build APIs", requirements=["Python"])
        db.add(job)
        db.commit()
        job_id = job.id

    analysis_id = upload_and_wait(client, auth_headers(), runner, cv_pdf, data={**FORM, "jobId": job_id})

    record = store.get(analysis_id)
    assert record.target_jobs[0]["title"] == "Backend Engineer"
    assert record.target_jobs[0]["requirements"] == ["Python"]


def test_requires_authentication(client, users):
    response = client.get(f"{BASE}/history")
    assert response.status_code == 401
    assert response.json()["message"] == "Access denied. No token provided."

    response = client.get(f"{BASE}/history", headers={"Authorization": "Bearer not.a.token"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid token."


def test_token_cookie_accepted(client, auth_headers):
    token = auth_headers()["Authorization"].split(" ", 1)[1]
    client.cookies.set("token", token)
    response = client.get(f"{BASE}/history")
    client.cookies.clear()
    assert response.status_code == 200


def test_deactivated_and_non_user_tokens(client, auth_headers, users):
    response = client.get(f"{BASE}/history", headers=auth_headers("inactive"))
    assert response.status_code == 401
    assert response.json()["message"] == "Account is deactivated."

    company_token = jwt.encode({"companyId": "c1", "type": "company"}, settings.jwt_secret, algorithm=JWT_ALGORITHM)
    response = client.get(f"{BASE}/history", headers={"Authorization": f"Bearer {company_token}"})
    assert response.status_code == 403


def test_ownership_isolation(client, auth_headers, runner, cv_pdf):
    analysis_id = upload_and_wait(client, auth_headers(), runner, cv_pdf)
    intruder = auth_headers("other")

    assert client.get(f"{BASE}/results/{analysis_id}", headers=intruder).status_code == 404
    assert client.post(f"{BASE}/reanalyze/{analysis_id}", headers=intruder).status_code == 404
    assert client.delete(f"{BASE}/{analysis_id}", headers=intruder).status_code == 404
    assert client.get(f"{BASE}/history", headers=intruder).json()["data"]["totalDocs"] == 0

    response = client.get(f"{BASE}/results/{analysis_id}", headers=intruder)
    assert response.json() == {"success": False, "message": "Analysis not found"}


def test_upload_rate_limited(client, auth_headers, runner, cv_pdf):
    headers = auth_headers()
    for _ in range(5):
        assert upload(client, headers, cv_pdf).status_code == 202

    response = upload(client, headers, cv_pdf)
    assert response.status_code == 429
    body = response.json()
    assert body["success"] is False
    assert body["retryAfter"] >= 1

    # Limits are per user
    assert upload(client, auth_headers("other"), cv_pdf).status_code == 202


def test_history_excludes_extracted_text(client, auth_headers, runner, cv_pdf):
    headers = auth_headers()
    upload_and_wait(client, headers, runner, cv_pdf)
    upload_and_wait(client, headers, runner, cv_pdf)

    response = client.get(f"{BASE}/history", headers=headers, params={"limit": 1})
    assert response.status_code == 200
    page = response.json()["data"]
    assert page["totalDocs"] == 2
    assert page["totalPages"] == 2
    assert page["hasNextPage"] is True
    assert "extractedText" not in page["docs"][0]

    completed = client.get(f"{BASE}/history", headers=headers, params={"status": "completed"}).json()["data"]
    assert completed["totalDocs"] == 2

    assert client.get(f"{BASE}/history", headers=headers, params={"status": "bogus"}).status_code == 400


def test_reanalyze_with_new_context(client, auth_headers, runner, store, cv_pdf):
    headers = auth_headers()
    analysis_id = upload_and_wait(client, headers, runner, cv_pdf)

    response = client.post(
        f"{BASE}/reanalyze/{analysis_id}",
        headers=headers,
        json={"experienceLevel": "senior", "targetJobTitle": "Staff Engineer"},
    )
    assert response.status_code == 200
    assert response.json()["data"] == {"analysisId": analysis_id, "status": "processing"}

    assert runner.wait(analysis_id, timeout=30)
    record = store.get(analysis_id)
    assert record.status == "completed"
    assert record.version == 2
    assert record.experience_level == "senior"
    assert record.target_job_title == "Staff Engineer"


def test_reanalyze_conflicts_while_processing(client, auth_headers, store, users, context):
    record = store.create(users["owner"], "cv.pdf", "cv_1_abc.pdf", 10, context)
    store.begin_processing(record.id, record.version)

    response = client.post(f"{BASE}/reanalyze/{record.id}", headers=auth_headers())
    assert response.status_code == 409


def test_reanalyze_rejects_invalid_body(client, auth_headers, runner, cv_pdf):
    headers = auth_headers()
    analysis_id = upload_and_wait(client, headers, runner, cv_pdf)

    response = client.post(f"{BASE}/reanalyze/{analysis_id}", headers=headers, json={"experienceLevel": "guru"})
    assert response.status_code == 400
    assert response.json()["field"] == "experienceLevel"


def test_reanalyze_major_validated_after_trimming(client, auth_headers, runner, store, cv_pdf):
    headers = auth_headers()
    analysis_id = upload_and_wait(client, headers, runner, cv_pdf)

    response = client.post(f"{BASE}/reanalyze/{analysis_id}", headers=headers, json={"major": "   x   "})
    assert response.status_code == 400
    assert response.json()["field"] == "major"

    record = store.get(analysis_id)
    assert record.major == "Computer Science"
    assert record.status == "completed"
    assert record.version == 1

    response = client.post(f"{BASE}/reanalyze/{analysis_id}", headers=headers, json={"major": "  Data Science  "})
    assert response.status_code == 200
    assert runner.wait(analysis_id, timeout=30)
    assert store.get(analysis_id).major == "Data Science"


def test_delete_removes_record_and_file(client, auth_headers, runner, store, storage, cv_pdf):
    headers = auth_headers()
    analysis_id = upload_and_wait(client, headers, runner, cv_pdf)
    file_ref = store.get(analysis_id).file_ref
    assert storage.exists(file_ref)

    response = client.delete(f"{BASE}/{analysis_id}", headers=headers)
    assert response.status_code == 200
    assert response.json()["success"] is True

    assert not storage.exists(file_ref)
    assert client.get(f"{BASE}/results/{analysis_id}", headers=headers).status_code == 404
    assert client.delete(f"{BASE}/{analysis_id}", headers=headers).status_code == 404


def test_analytics(client, auth_headers, runner, cv_pdf):
    headers = auth_headers()
    upload_and_wait(client, headers, runner, cv_pdf)

    response = client.get(f"{BASE}/analytics", headers=headers, params={"timeframe": "7d"})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["totalAnalyses"] == 1
    assert data["averageScore"] == 78
    assert data["scoreDistribution"]["good"] == 1
    assert {item["skill"] for item in data["topSkills"]} == {"Python", "Docker"}

    response = client.get(f"{BASE}/analytics", headers=headers, params={"timeframe": "5y"})
    assert response.status_code == 400
    assert response.json()["field"] == "timeframe"


def test_health_needs_no_auth(client):
    response = client.get(f"{BASE}/health")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "CV Analyzer service is running"
    assert body["services"]["database"] == "connected"
    assert body["services"]["storage"] == "local"
    assert "timestamp" in body


class ClosedRunner:
    def is_running(self, analysis_id):
        return False

    def submit(self, analysis_id, fn, *args):
        raise SchedulingError("Task runner is shut down")


def test_unschedulable_upload_is_rolled_back(client, auth_headers, store, storage, users, cv_pdf):
    app.dependency_overrides[deps.get_runner] = ClosedRunner

    response = upload(client, auth_headers(), cv_pdf)

    assert response.status_code == 503
    assert response.json()["success"] is False
    assert store.list_by_owner(users["owner"])["totalDocs"] == 0
    assert not any(storage.root.iterdir())
