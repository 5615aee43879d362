import pytest
from fastapi.testclient import TestClient

from fastapi_server import create_app
from wavetable_writer import read_wavetable


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as c:
        yield c


def test_live_and_version(client):
    assert client.get("/live").json()["ok"] is True
    r = client.get("/version")
    assert r.status_code == 200
    assert r.json()["service"] == "tablemorph"


def test_request_id_echoed(client):
    r = client.get("/live", headers={"X-Request-ID": "abc123"})
    assert r.headers["X-Request-ID"] == "abc123"
    assert "X-Process-Time" in r.headers
    assert client.get("/live").headers["X-Request-ID"]


def test_health_reports_config_and_cache(client, settings):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["config"]["frame_count"] == settings.frame_count
    assert body["cache"]["root"] == str(settings.sounds_dir)


def test_generate_wavetable(client):
    r = client.post("/generate/wavetable", json={"seed": 42, "waveform_type": "sine"})
    assert r.status_code == 200
    frames = read_wavetable(r.json()["path"])
    assert frames.shape == (8, 256)


def test_generate_wavetable_overrides_shape(client):
    r = client.post("/generate/wavetable", json={"seed": 1, "frame_count": 4, "sample_count": 512})
    assert r.status_code == 200
    assert read_wavetable(r.json()["path"]).shape == (4, 512)


def test_generate_single_cycle(client):
    r = client.post("/generate/single_cycle", json={"seed": 7, "waveform_type": "fm"})
    assert r.status_code == 200
    assert read_wavetable(r.json()["path"]).shape == (1, 256)


@pytest.mark.parametrize("body", [
    {"sample_count": 1000},
    {"sample_count": 128},
    {"frame_count": 0},
    {"seed": -1},
    {"waveform_type": "kazoo"},
])
def test_generate_rejects_bad_bodies(client, body):
    assert client.post("/generate/wavetable", json=body).status_code == 422


def test_generate_batch(client):
    r = client.post("/generate/batch", json={"kind": "single_cycle", "count": 3, "seed": 2, "max_workers": 2})
    assert r.status_code == 200
    body = r.json()
    assert body["written"] == 3
    assert body["skipped"] == 0
    assert body["run_id"]


def test_generate_batch_count_limit(client):
    assert client.post("/generate/batch", json={"count": 0}).status_code == 422
    assert client.post("/generate/batch", json={"count": 101}).status_code == 422
