import json

from syndata.core.config import get_settings
from syndata.pipeline.webhook import sign_payload, verify_signature

API = "/api/v1"
SECRET = "whsec-test"


def _post(client, payload, secret=SECRET, signature=None):
    body = json.dumps(payload).encode()
    signature = signature if signature is not None else sign_payload(body, secret)
    return client.post(
        f"{API}/pipeline/webhook",
        content=body,
        headers={"Content-Type": "application/json", "X-Pipeline-Signature": signature},
    )


def _queued_job(client, owner, make_job):
    job = make_job()
    r = client.post(f"{API}/jobs/{job['id']}/submit", headers=owner["headers"])
    return r.json()


def test_signature_helpers():
    body = b'{"job_id":"x"}'
    sig = sign_payload(body, "k")
    assert verify_signature(body, sig, "k")
    assert verify_signature(body, sig.upper(), "k")
    assert not verify_signature(body, sig, "other")
    assert not verify_signature(body, "", "k")


def test_webhook_completes_job(client, owner, make_job):
    job = _queued_job(client, owner, make_job)
    r = _post(
        client,
        {
            "job_id": job["pipeline_job_id"],
            "status": "completed",
            "progress": 100,
            "result_uri": "https://cdn.example.com/out.csv",
        },
    )
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "completed"
    assert r.json()["started_at"] is not None

    result = client.get(f"{API}/jobs/{job['id']}/result", headers=owner["headers"]).json()
    assert result["download_url"] == "https://cdn.example.com/out.csv"


def test_webhook_failure_with_error_details(client, owner, make_job):
    job = _queued_job(client, owner, make_job)
    r = _post(
        client,
        {"job_id": job["pipeline_job_id"], "status": "failed", "error": {"code": "E42", "message": "bad seed"}},
    )
    assert r.json()["status"] == "failed"
    assert r.json()["error"] == "E42: bad seed"


def test_webhook_rejects_bad_signature(client, owner, make_job):
    job = _queued_job(client, owner, make_job)
    r = _post(client, {"job_id": job["pipeline_job_id"], "status": "completed"}, signature="deadbeef")
    assert r.status_code == 401


def test_webhook_unknown_job(client):
    assert _post(client, {"job_id": "pj-missing", "status": "running"}).status_code == 404


def test_webhook_bad_payload(client):
    assert _post(client, {"status": "running"}).status_code == 400


def test_webhook_disabled_without_secret(client, monkeypatch):
    monkeypatch.setattr(get_settings(), "PIPELINE_WEBHOOK_SECRET", "")
    assert _post(client, {"job_id": "pj", "status": "running"}).status_code == 403


def test_webhook_failure_with_plain_error(client, owner, make_job):
    job = _queued_job(client, owner, make_job)
    r = _post(client, {"job_id": job["pipeline_job_id"], "status": "failed", "error": "OOM in model-generation"})
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "failed"
    assert r.json()["error"] == "OOM in model-generation"


def test_non_ascii_signature_is_rejected(client, owner, make_job):
    assert not verify_signature(b"{}", "é" * 64, "k")

    job = _queued_job(client, owner, make_job)
    body = json.dumps({"job_id": job["pipeline_job_id"], "status": "completed"}).encode()
    r = client.post(
        f"{API}/pipeline/webhook",
        content=body,
        headers={"Content-Type": "application/json", "X-Pipeline-Signature": b"\xe9" * 64},
    )
    assert r.status_code == 401
