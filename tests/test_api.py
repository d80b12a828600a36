import json

import pytest
from fastapi.testclient import TestClient

from api import dependencies
from api.app import create_app

CACHED = (dependencies.get_repo, dependencies.get_storage, dependencies.get_indexer, dependencies.get_ingestor)


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{tmp_path / 'api.db'}")
    monkeypatch.setenv("PROJECT_STORAGE_ROOT", str(tmp_path / "data"))
    monkeypatch.setenv("WHOOSH_DIR", str(tmp_path / "whoosh"))
    for factory in CACHED:
        factory.cache_clear()
    with TestClient(create_app()) as test_client:
        yield test_client
    dependencies.get_ingestor().close()
    for factory in CACHED:
        factory.cache_clear()


def upload(client, payload: bytes, filename: str = "Demo.aia"):
    return client.post("/projects/upload", files={"file": (filename, payload, "application/octet-stream")})


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_upload_ingests_project(client, project_archive):
    response = upload(client, project_archive())
    assert response.status_code == 200
    body = response.json()
    project_id, job_id = body["project_id"], body["job_id"]
    assert project_id.startswith("demo-")

    job = client.get(f"/jobs/{job_id}").json()
    assert job["state"] == "completed"
    assert job["project_id"] == project_id

    project = client.get(f"/projects/{project_id}").json()
    assert project["status"] == "ingested"
    assert project["screen_count"] == 1
    assert [p["id"] for p in client.get("/projects").json()] == [project_id]

    model = client.get(f"/projects/{project_id}/model").json()
    assert model["screens"][0]["name"] == "Screen1"

    components = client.get(f"/projects/{project_id}/screens/Screen1/components").json()["components"]
    assert [c["name"] for c in components] == ["Screen1", "HorizontalArrangement1", "Button1", "Button2"]

    hits = client.get(f"/projects/{project_id}/search", params={"query": "Button2"}).json()["hits"]
    assert [h["screen_name"] for h in hits] == ["Screen1"]


def test_upload_errors(client, project_archive):
    assert upload(client, b"").status_code == 400
    payload = project_archive()
    assert upload(client, payload).status_code == 200
    assert upload(client, payload).status_code == 409


def test_missing_records_are_404(client):
    assert client.get("/projects/nope").status_code == 404
    assert client.get("/projects/nope/model").status_code == 404
    assert client.get("/projects/nope/screens/Screen1/components").status_code == 404
    assert client.get("/jobs/nope").status_code == 404
    assert client.post("/jobs/nope/cancel").status_code == 404


def test_cancel_job_removes_project(client, project_archive):
    body = upload(client, project_archive()).json()
    response = client.post(f"/jobs/{body['job_id']}/cancel")
    assert response.json()["status"] == "cancelled"
    assert client.get(f"/projects/{body['project_id']}").status_code == 404


def test_inspect_extension(client, make_archive):
    aix = make_archive(
        {
            "com.ex.Pack/files/component_build_infos.json": json.dumps([{"type": "com.ex.Pack"}]),
            "com.ex.Pack/components.json": json.dumps(
                [{"type": "com.ex.Pack", "name": "Pack", "author": "someone", "helpString": "<p>Does things</p>"}]
            ),
        }
    )
    response = client.post("/extensions/inspect", files={"file": ("Pack.aix", aix, "application/octet-stream")})
    assert response.status_code == 200
    [info] = response.json()
    assert info["name"] == "Pack"
    assert info["description"] == "Does things"
    assert info["author"] == "someone"

    empty = make_archive({"README.txt": "nothing"})
    response = client.post("/extensions/inspect", files={"file": ("Empty.aix", empty, "application/octet-stream")})
    assert response.status_code == 422
