# File: backend/tests/test_primers_api.py
# Version: v0.1.0
"""
Primer endpoints: parameters, design (single / batch / stream), analysis, binding, runs.
"""
import json

import pytest
from fastapi.testclient import TestClient

from backend.app.core.primer.thermodynamics import revcomp
from backend.app.main import app

RELAXED = {"primerTmMin": 40.0, "primerTmMax": 80.0}


@pytest.fixture(scope="module")
def client():
    with TestClient(app) as c:
        yield c


# --- parameters ----------------------------------------------------------------------------------

def test_parameters_roundtrip(client):
    r = client.get("/api/v1/primers/parameters")
    assert r.status_code == 200
    params = r.json()
    assert params["primerLengthMin"] == 18

    params["primerTmTarget"] = 61.0
    r = client.put("/api/v1/primers/parameters", json=params)
    assert r.status_code == 200
    assert client.get("/api/v1/primers/parameters").json()["primerTmTarget"] == 61.0

    params["primerTmTarget"] = 60.0
    client.put("/api/v1/primers/parameters", json=params)


def test_parameters_reject_out_of_range_values(client):
    params = client.get("/api/v1/primers/parameters").json()
    params.update(primerGCMax=120.0)
    assert client.put("/api/v1/primers/parameters", json=params).status_code == 422


# --- design --------------------------------------------------------------------------------------

def test_design_persists_run(client, template60):
    body = {"sequence": template60, "start": 20, "end": 40, "replacement": "", "parameters": RELAXED}
    r = client.post("/api/v1/primers/design", json=body)
    assert r.status_code == 200, r.text
    data = r.json()
    result = data["result"]
    assert result["edit"]["kind"] == "deletion"
    assert result["reverse"]["end"] == result["forward"]["start"]
    assert result["qualityTier"] in ("excellent", "good", "acceptable", "marginal", "poor")

    run = client.get(f"/api/v1/primers/runs/{data['runId']}")
    assert run.status_code == 200
    record = run.json()
    assert record["status"] == "completed"
    assert record["sequenceLength"] == 60
    assert record["result"]["forward"]["sequence"] == result["forward"]["sequence"]

    listing = client.get("/api/v1/primers/runs").json()
    assert any(item["id"] == data["runId"] and item["result"] is None for item in listing)


def test_design_from_mutation_notation(client, template60):
    body = {"sequence": template60, "mutation": "del21-40", "parameters": RELAXED}
    r = client.post("/api/v1/primers/design", json=body)
    assert r.status_code == 200, r.text
    edit = r.json()["result"]["edit"]
    assert (edit["start"], edit["end"]) == (20, 40)


def test_design_requires_region_or_notation(client, template60):
    r = client.post("/api/v1/primers/design", json={"sequence": template60, "start": 20})
    assert r.status_code == 422


@pytest.mark.parametrize(
    "sequence",
    ["ACGTNNNN" * 10, "ACGT" * 5],
)
def test_design_bad_template_is_400(client, sequence):
    body = {"sequence": sequence, "start": 1, "end": 3, "replacement": ""}
    r = client.post("/api/v1/primers/design", json=body)
    assert r.status_code == 400
    assert "message" in r.json()["detail"]


def test_design_region_outside_template_is_400(client, template60):
    body = {"sequence": template60, "start": 100, "end": 120, "replacement": "", "parameters": RELAXED}
    assert client.post("/api/v1/primers/design", json=body).status_code == 400


def test_design_infeasible_is_422_and_recorded(client, template60):
    body = {
        "sequence": template60, "start": 20, "end": 40, "replacement": "",
        "parameters": {"primerTmMin": 79.0, "primerTmMax": 80.0},
    }
    r = client.post("/api/v1/primers/design", json=body)
    assert r.status_code == 422
    detail = r.json()["detail"]
    assert detail["hints"]
    failed = [x for x in client.get("/api/v1/primers/runs").json() if x["status"] == "failed"]
    assert failed


def test_batch_design(client, template60):
    body = {
        "sequence": template60,
        "parameters": RELAXED,
        "edits": [
            {"start": 20, "end": 40, "replacement": ""},
            {"mutation": "A21G"},
            {"start": 24, "end": 24, "replacement": "GAATTC"},
        ],
    }
    r = client.post("/api/v1/primers/design/batch", json=body)
    assert r.status_code == 200, r.text
    data = r.json()
    assert (data["succeeded"], data["failed"]) == (2, 1)
    assert [it["index"] for it in data["items"]] == [0, 1, 2]
    assert data["items"][1]["success"] is False


def test_design_stream_phases(client, template60):
    body = {"sequence": template60, "start": 20, "end": 40, "replacement": "", "parameters": RELAXED}
    events = []
    with client.stream("POST", "/api/v1/primers/design/stream", json=body) as r:
        assert r.status_code == 200
        for line in r.iter_lines():
            if line.startswith("data: "):
                events.append(json.loads(line[len("data: "):]))
    assert [e["phase"] for e in events] == ["session", "preview", "final"]
    assert events[0]["sessionId"]
    assert events[2]["result"]["search"] == "exhaustive"
    assert events[1]["generation"] == events[2]["generation"]


# --- analysis / binding --------------------------------------------------------------------------

def test_analyze_single_primer(client, lacz80):
    r = client.post("/api/v1/primers/analyze", json={"forward": lacz80[10:30], "template": lacz80})
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["length"] == 20
    assert data["offTargets"] == 0
    assert "hairpin" in data


def test_analyze_pair_reports_partial_failure(client, lacz80):
    r = client.post("/api/v1/primers/analyze", json={"forward": lacz80[10:30], "reverse": "ACGT"})
    assert r.status_code == 200
    data = r.json()
    assert data["forward"] is not None
    assert "reverse" in data["errors"]
    assert data["score"] is None


def test_analyze_pair(client, lacz80):
    body = {"forward": lacz80[10:30], "reverse": revcomp(lacz80[60:80]), "template": lacz80}
    data = client.post("/api/v1/primers/analyze", json=body).json()
    assert data["score"]["qualityTier"]
    assert "complementarity" in data


def test_analyze_unknown_mode_is_400(client, lacz80):
    r = client.post("/api/v1/primers/analyze", json={"forward": lacz80[10:30], "mode": "bogus"})
    assert r.status_code == 400


def test_binding_exact(client, lacz80):
    r = client.post("/api/v1/primers/binding", json={"template": lacz80, "primer": lacz80[10:30]})
    assert r.status_code == 200
    assert r.json()["start"] == 10
    assert r.json()["method"] == "exact"


def test_binding_not_found(client):
    r = client.post("/api/v1/primers/binding", json={"template": "AT" * 40, "primer": "GCGCGCGCGCGCGCGCGCGC"})
    assert r.status_code == 404


def test_binding_short_primer(client, lacz80):
    r = client.post("/api/v1/primers/binding", json={"template": lacz80, "primer": "ACGTAC"})
    assert r.status_code == 400


def test_unknown_run_is_404(client):
    assert client.get("/api/v1/primers/runs/does-not-exist").status_code == 404
