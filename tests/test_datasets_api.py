import io
from datetime import datetime

import pytest
from botocore.exceptions import ClientError

from syndata.datasets.chat_service import DatasetChatService, build_context
from syndata.datasets.service import parse_csv_head
from syndata.projects import service as projects_service

API = "/api/v1"
CSV = b"customer_id,plan,mrr\n1,basic,20\n2,pro,99\n3,basic,20\n"


@pytest.fixture
def s3(aws):
    s3 = aws["s3"]

    def list_objects_v2(Bucket, Prefix, MaxKeys, **kwargs):
        contents = {
            "datasets/": [{"Key": "datasets/customers.csv", "Size": len(CSV), "LastModified": datetime(2025, 1, 2)}],
            "jobs/": [{"Key": "jobs/abc/part-0.csv", "Size": 2048, "LastModified": datetime(2025, 1, 3)}],
        }
        return {"Contents": contents.get(Prefix, []), "IsTruncated": False}

    s3.list_objects_v2.side_effect = list_objects_v2
    s3.get_object.side_effect = lambda **kwargs: {"Body": io.BytesIO(CSV)}
    s3.generate_presigned_url.return_value = "https://s3.example.com/signed"
    return s3


@pytest.fixture
def bucket_project(client, owner, s3, monkeypatch):
    monkeypatch.setattr(projects_service.settings, "PROJECT_BUCKETS_ENABLED", True)
    r = client.post(f"{API}/projects", json={"name": "With storage"}, headers=owner["headers"])
    assert r.status_code == 201, r.text
    return r.json()


def test_project_bucket_is_provisioned(bucket_project, s3):
    bucket = bucket_project["storage"]["bucket_name"]
    assert bucket.startswith("syndatagen-self-")
    assert bucket_project["storage"]["region"] == "us-east-1"
    s3.create_bucket.assert_called_once_with(Bucket=bucket)
    s3.put_public_access_block.assert_called_once()
    rules = s3.put_bucket_lifecycle_configuration.call_args.kwargs["LifecycleConfiguration"]["Rules"]
    assert rules[0]["Expiration"] == {"Days": 30}


def test_list_datasets(client, owner, bucket_project):
    r = client.get(f"{API}/projects/{bucket_project['id']}/datasets", headers=owner["headers"])
    assert r.status_code == 200
    body = r.json()
    assert body["bucket_name"] == bucket_project["storage"]["bucket_name"]
    assert [d["key"] for d in body["datasets"]] == ["datasets/customers.csv", "jobs/abc/part-0.csv"]


def test_project_without_bucket(client, owner, project):
    r = client.get(f"{API}/projects/{project['id']}/datasets", headers=owner["headers"])
    assert r.status_code == 400


def test_upload_url_sanitizes_filename(client, owner, bucket_project, s3):
    r = client.post(
        f"{API}/projects/{bucket_project['id']}/datasets/upload-url",
        json={"filename": "../Q1 export (final).csv"},
        headers=owner["headers"],
    )
    assert r.status_code == 200
    assert r.json()["key"] == "datasets/Q1_export_final_.csv"
    assert r.json()["upload_url"] == "https://s3.example.com/signed"
    params = s3.generate_presigned_url.call_args.kwargs["Params"]
    assert params["ContentType"] == "text/csv"


def test_preview(client, owner, bucket_project):
    r = client.get(
        f"{API}/projects/{bucket_project['id']}/datasets/preview",
        params={"key": "datasets/customers.csv", "rows": 2},
        headers=owner["headers"],
    )
    assert r.status_code == 200
    body = r.json()
    assert body["columns"] == ["customer_id", "plan", "mrr"]
    assert body["rows"] == [["1", "basic", "20"], ["2", "pro", "99"]]
    assert body["truncated"] is True


def test_preview_rejects_keys_outside_dataset_prefixes(client, owner, bucket_project):
    for key in ("secrets/creds.csv", "datasets/../secrets.csv"):
        r = client.get(
            f"{API}/projects/{bucket_project['id']}/datasets/preview",
            params={"key": key},
            headers=owner["headers"],
        )
        assert r.status_code == 400


def test_preview_missing_object(client, owner, bucket_project, s3):
    s3.get_object.side_effect = ClientError({"Error": {"Code": "NoSuchKey"}}, "GetObject")
    r = client.get(
        f"{API}/projects/{bucket_project['id']}/datasets/preview",
        params={"key": "datasets/gone.csv"},
        headers=owner["headers"],
    )
    assert r.status_code == 404


def test_chat_not_configured(client, owner, bucket_project, monkeypatch):
    monkeypatch.setattr(DatasetChatService, "_instance", None)
    r = client.post(
        f"{API}/projects/{bucket_project['id']}/datasets/chat",
        json={"dataset_key": "datasets/customers.csv", "message": "What columns are there?"},
        headers=owner["headers"],
    )
    assert r.status_code == 400


def test_chat_sends_dataset_context(client, owner, bucket_project, monkeypatch):
    seen = {}

    async def fake_ask(self, context, message, history):
        seen.update(context=context, message=message, history=history)
        return "There are three columns."

    monkeypatch.setattr(DatasetChatService, "_instance", object.__new__(DatasetChatService))
    monkeypatch.setattr(DatasetChatService, "ask", fake_ask)

    r = client.post(
        f"{API}/projects/{bucket_project['id']}/datasets/chat",
        json={
            "dataset_key": "datasets/customers.csv",
            "message": "What columns are there?",
            "history": [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}],
        },
        headers=owner["headers"],
    )
    assert r.status_code == 200, r.text
    assert r.json() == {
        "reply": "There are three columns.",
        "dataset_key": "datasets/customers.csv",
        "rows_in_context": 3,
    }
    assert "Columns: customer_id, plan, mrr" in seen["context"]
    assert seen["history"][1] == {"role": "assistant", "content": "hello"}


def test_parse_csv_head_drops_partial_last_row():
    columns, rows, truncated = parse_csv_head(b"a,b\n1,2\n3,4\n5,", max_rows=10, truncated=True)
    assert columns == ["a", "b"]
    assert rows == [["1", "2"], ["3", "4"]]
    assert truncated is True


def test_build_context_limits_rows():
    context = build_context(["a"], [[str(i)] for i in range(500)])
    assert "\n49" in context
    assert "\n50\n" not in context
