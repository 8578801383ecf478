# File: backend/tests/test_secondary_structure.py
# Version: v0.2.0
"""
Tests for the secondary structure analysis API.

These tests use httpx.AsyncClient (ASGI transport) to hit the FastAPI app in-memory.
"""

import pytest
from httpx import ASGITransport, AsyncClient
from backend.app.main import app
from backend.app.services.secondary_structure_service import _merge_with_gap, _runs_from_flags

pytestmark = pytest.mark.asyncio


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def test_stems_basic_ok():
    async with _client() as ac:
        payload = {
            "sequence": "ACGT" * 30,  # 120bp
            "min_stem_len": 4,
            "merge_max_gap": 2,
        }
        resp = await ac.post("/api/v1/analysis/stems", json=payload)
        assert resp.status_code == 200
        data = resp.json()
        assert "regions" in data
        assert data["length"] == 120
        # Regions may be empty depending on MFE, but schema should be correct
        assert isinstance(data["regions"], list)
        for r in data["regions"]:
            assert r["kind"] == "stems"
            assert 0 <= r["start"] <= r["end"] <= data["length"]


async def test_stems_long_sequence_is_windowed():
    seq = "GGGGAAAACCCCTTTT" * 12 + "ACGTACGT"   # 200bp, beyond one fold window
    async with _client() as ac:
        resp = await ac.post("/api/v1/analysis/stems", json={"sequence": seq})
        assert resp.status_code == 200
        data = resp.json()
        assert data["length"] == 200
        assert data["regions"]
        for r in data["regions"]:
            assert r["end"] - r["start"] >= 4


async def test_stems_validation():
    async with _client() as ac:
        bad_payload = {"sequence": "", "min_stem_len": 0, "merge_max_gap": -1}
        resp = await ac.post("/api/v1/analysis/stems", json=bad_payload)
        # Pydantic validation error
        assert resp.status_code == 422


async def test_stems_invalid_bases():
    async with _client() as ac:
        resp = await ac.post("/api/v1/analysis/stems", json={"sequence": "ACGTXXXX"})
        assert resp.status_code == 400


async def test_fold_hairpin():
    async with _client() as ac:
        resp = await ac.post("/api/v1/analysis/fold", json={"sequence": "GGGGAAAACCCC"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["kind"] == "hairpin"
        assert data["dg"] < 0
        assert len(data["dotBracket"]) == 12
        assert data["stems"]


async def test_fold_self_dimer():
    primer = "ACGTACGTAGCTAGCTACGT"
    async with _client() as ac:
        resp = await ac.post("/api/v1/analysis/fold", json={"sequence": primer, "partner": primer})
        assert resp.status_code == 200
        data = resp.json()
        assert data["kind"] == "self_dimer"
        assert "&" in data["dotBracket"]


async def test_fold_invalid_sequence():
    async with _client() as ac:
        resp = await ac.post("/api/v1/analysis/fold", json={"sequence": "ACGU"})
        assert resp.status_code == 400


async def test_merge_helpers():
    assert _runs_from_flags([False, True, True, False, True]) == [(1, 3), (4, 5)]
    assert _merge_with_gap([(10, 16), (18, 25)], 2) == [(10, 25)]
    assert _merge_with_gap([(10, 16), (20, 25)], 2) == [(10, 16), (20, 25)]
