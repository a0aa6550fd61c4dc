def create_item(client, slug, weight=1, auto=True, criteria=None, **extra):
    payload = {
        "slug": slug,
        "title": slug.replace("-", " ").title(),
        "autoEvaluated": auto,
        "weight": weight,
        "successCriteria": criteria or {},
        **extra,
    }
    resp = client.post("/release/checklist", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def schedule(client, version="v1.0.0", **extra):
    payload = {"versionTag": version, "initiatedByEmail": "ops@example.com", **extra}
    resp = client.post("/release/runs", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_checklist_crud(client):
    created = create_item(client, "coverage", weight=2, criteria={"minCoverage": 0.9}, category="quality")
    assert created["publicId"]
    assert created["successCriteria"] == {"minCoverage": 0.9}

    duplicate = client.post("/release/checklist", json={"slug": "coverage", "title": "Again"})
    assert duplicate.status_code == 409

    resp = client.patch("/release/checklist/coverage", json={"weight": 5})
    assert resp.status_code == 200
    assert resp.json()["weight"] == 5
    assert resp.json()["successCriteria"] == {"minCoverage": 0.9}

    assert client.patch("/release/checklist/missing", json={"weight": 2}).status_code == 404

    listing = client.get("/release/checklist", params={"limit": 10})
    assert listing.status_code == 200
    body = listing.json()
    assert body["total"] == 1
    assert body["items"][0]["slug"] == "coverage"
    assert body["thresholds"]["maxErrorRate"] == 0.01
    assert body["requiredGates"] == []


def test_checklist_validation(client):
    assert client.post("/release/checklist", json={"slug": "  ", "title": "Blank"}).status_code == 422
    assert client.post("/release/checklist", json={"title": "No slug"}).status_code == 422
    assert client.get("/release/checklist", params={"limit": 0}).status_code == 422
    assert client.get("/release/checklist", params={"limit": 201}).status_code == 422
    assert client.get("/release/checklist", params={"offset": -1}).status_code == 422


def test_schedule_requires_version_and_initiator(client):
    resp = client.post("/release/runs", json={"versionTag": "   ", "initiatedByEmail": "ops@example.com"})
    assert resp.status_code == 422
    assert resp.json()["detail"]["field"] == "versionTag"

    resp = client.post("/release/runs", json={"versionTag": "v1"})
    assert resp.status_code == 422
    assert resp.json()["detail"]["field"] == "initiatedByEmail"

    assert client.get("/release/runs").json()["total"] == 0


def test_release_run_flow(client):
    create_item(client, "coverage", weight=1, criteria={"minCoverage": 0.9})
    create_item(client, "security-scan", weight=3, criteria={"maxCriticalVulnerabilities": 0})

    scheduled = schedule(client, version="Release 3.1", environment="Staging")
    run_id = scheduled["run"]["publicId"]
    assert scheduled["run"]["versionTag"] == "release-3.1"
    assert scheduled["run"]["status"] == "scheduled"
    assert len(scheduled["gates"]) == 2

    detail = client.get(f"/release/runs/{run_id}")
    assert detail.status_code == 200
    gates = {gate["gateKey"]: gate for gate in detail.json()["gates"]}
    assert gates["coverage"]["snapshot"]["weight"] == 1

    resp = client.post(f"/release/runs/{run_id}/gates/coverage", json={"metrics": {"coverage": 0.95}})
    assert resp.status_code == 200
    assert resp.json()["status"] == "pending"
    assert resp.json()["lastEvaluatedAt"] is not None

    evaluation = client.post(f"/release/runs/{run_id}/evaluate")
    assert evaluation.status_code == 200
    body = evaluation.json()
    assert body["readinessScore"] == 25
    assert body["recommendedStatus"] == "blocked"
    assert [gate["gateKey"] for gate in body["blockingGates"]] == ["security-scan"]

    client.post(f"/release/runs/{run_id}/gates/security-scan", json={"status": "waived", "notes": "risk accepted"})
    body = client.post(f"/release/runs/{run_id}/evaluate").json()
    assert body["readinessScore"] == 100
    assert body["recommendedStatus"] == "ready"
    assert body["run"]["metadata"]["readinessScore"] == 100

    listing = client.get("/release/runs", params={"status": "ready", "environment": "staging"})
    assert [run["publicId"] for run in listing.json()["items"]] == [run_id]
    assert client.get("/release/runs", params={"versionTag": "release-3.1"}).json()["total"] == 1


def test_unknown_run_is_404(client):
    assert client.get("/release/runs/nope").status_code == 404
    assert client.post("/release/runs/nope/evaluate").status_code == 404
    assert client.post("/release/runs/nope/gates/coverage", json={"status": "pass"}).status_code == 404


def test_invalid_gate_status_is_rejected(client):
    create_item(client, "coverage")
    run_id = schedule(client)["run"]["publicId"]
    resp = client.post(f"/release/runs/{run_id}/gates/coverage", json={"status": "maybe"})
    assert resp.status_code == 422


def test_dashboard_and_metrics_history(client):
    create_item(client, "coverage", criteria={"minCoverage": 0.9})
    run_id = schedule(client, version="v7", environment="qa")["run"]["publicId"]
    schedule(client, version="v8")
    client.post(f"/release/runs/{run_id}/evaluate")

    dashboard = client.get("/release/dashboard").json()
    assert dashboard["breakdown"]["scheduled"] == 1
    assert dashboard["breakdown"]["blocked"] == 1
    assert [run["versionTag"] for run in dashboard["upcoming"]] == ["v8"]
    assert len(dashboard["recent"]) == 2

    qa = client.get("/release/dashboard", params={"environment": "qa"}).json()
    assert qa["breakdown"]["blocked"] == 1
    assert qa["upcoming"] == []

    history = client.get("/metrics/release").json()
    assert history["latest_run"]["status"] == "blocked"
    assert history["run_status_counts"] == {"scheduled": 2, "blocked": 1}
    assert history["gate_failures"][0]["gate_key"] == "coverage"

    qa_history = client.get("/metrics/release", params={"environment": "qa"}).json()
    assert [entry["version_tag"] for entry in qa_history["latest_scores"]] == ["v7"]
