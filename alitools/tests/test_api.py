"""
API endpoint tests. Uploaded imports run as background tasks, which finish
before the test client returns the response.
"""
from alitools.services.import_jobs import job_registry


def upload(client, path, filename="geko_products_en.xml", content_type="application/xml"):
    return client.post(
        "/api/v1/imports/xml",
        files={"xmlFile": (filename, path.read_bytes(), content_type)},
    )


# ===================== HEALTH / ROOT =====================


async def test_root(client):
    r = await client.get("/")
    assert r.status_code == 200
    assert r.json()["status"] == "running"


async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"


# ===================== UPLOAD =====================


async def test_upload_runs_import(client, feed_path):
    r = await upload(client, feed_path)
    assert r.status_code == 202
    job_id = r.json()["jobId"]

    r = await client.get(f"/api/v1/imports/jobs/{job_id}")
    assert r.status_code == 200
    job = r.json()
    assert job["status"] == "completed"
    assert job["progress"] == 100
    assert job["results"]["base"]["counts"]["products"] == 3
    assert job["original_filename"] == "geko_products_en.xml"


async def test_upload_rejects_non_xml(client, tmp_path):
    path = tmp_path / "prices.csv"
    path.write_text("code,price\nP001,10\n")

    r = await upload(client, path, filename="prices.csv", content_type="text/csv")
    assert r.status_code == 400


async def test_upload_rejects_large_file(client, feed_path, monkeypatch, tmp_path):
    from alitools.api import imports
    monkeypatch.setattr(imports.settings, "MAX_UPLOAD_MB", 0)

    r = await upload(client, feed_path)
    assert r.status_code == 413
    # the partial copy is not left behind
    assert list((tmp_path / "uploads").iterdir()) == []


async def test_upload_limit_checked_across_chunks(client, tmp_path, monkeypatch):
    from alitools.api import imports
    monkeypatch.setattr(imports, "UPLOAD_CHUNK_SIZE", 16)
    monkeypatch.setattr(imports.settings, "MAX_UPLOAD_MB", 1)
    path = tmp_path / "huge.xml"
    path.write_bytes(b"<geko>" + b" " * (1024 * 1024) + b"</geko>")

    r = await upload(client, path, filename="huge.xml")
    assert r.status_code == 413


async def test_upload_rejects_empty_file(client, tmp_path):
    path = tmp_path / "empty.xml"
    path.write_text("   \n")

    r = await upload(client, path, filename="empty.xml")
    assert r.status_code == 400
    assert list((tmp_path / "uploads").iterdir()) == []


async def test_upload_of_broken_feed_fails_job(client, tmp_path):
    path = tmp_path / "broken.xml"
    path.write_text("<geko><products>")

    r = await upload(client, path, filename="broken.xml")
    assert r.status_code == 202

    r = await client.get(f"/api/v1/imports/jobs/{r.json()['jobId']}")
    assert r.json()["status"] == "failed"
    assert "parse" in r.json()["error"]

    r = await client.get("/api/v1/imports/history")
    history = r.json()
    assert len(history) == 1
    assert history[0]["sync_type"] == "api_upload:read"
    assert history[0]["status"] == "failed"
    assert history[0]["error_count"] == 1


async def test_uploaded_file_removed_after_import(client, feed_path, tmp_path):
    r = await upload(client, feed_path)

    r = await client.get(f"/api/v1/imports/jobs/{r.json()['jobId']}")
    assert r.json()["status"] == "completed"
    assert list((tmp_path / "uploads").iterdir()) == []


async def test_uploaded_file_removed_after_failed_import(client, tmp_path):
    path = tmp_path / "broken.xml"
    path.write_text("<geko><products>")

    await upload(client, path, filename="broken.xml")

    assert list((tmp_path / "uploads").iterdir()) == []


async def test_unexpected_error_fails_job(client, feed_path, monkeypatch):
    from alitools.api import imports

    async def explode(*args, **kwargs):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(imports, "run_pipeline", explode)

    r = await upload(client, feed_path)
    r = await client.get(f"/api/v1/imports/jobs/{r.json()['jobId']}")
    assert r.json()["status"] == "failed"
    assert r.json()["error"] == "RuntimeError: disk on fire"


async def test_category_path_of_separators_imports(client, tmp_path):
    path = tmp_path / "slash.xml"
    path.write_text(
        "<geko><products><product code='A'><name>Alpha</name>"
        "<category id='7' path='/'/></product></products></geko>"
    )

    r = await upload(client, path, filename="slash.xml")
    r = await client.get(f"/api/v1/imports/jobs/{r.json()['jobId']}")
    assert r.json()["status"] == "completed"
    assert r.json()["results"]["base"]["counts"]["categories"] == 1


# ===================== JOBS =====================


async def test_list_jobs_by_status(client, feed_path):
    r = await upload(client, feed_path)
    job_id = r.json()["jobId"]

    r = await client.get("/api/v1/imports/jobs", params={"status": "completed"})
    assert r.status_code == 200
    assert job_id in [job["id"] for job in r.json()]


async def test_list_jobs_invalid_status(client):
    r = await client.get("/api/v1/imports/jobs", params={"status": "exploded"})
    assert r.status_code == 400


async def test_get_unknown_job(client):
    r = await client.get("/api/v1/imports/jobs/does-not-exist")
    assert r.status_code == 404


async def test_cancel_queued_job(client):
    job = job_registry.create("uploads/queued.xml")

    r = await client.delete(f"/api/v1/imports/jobs/{job.id}")
    assert r.status_code == 200
    assert r.json()["status"] == "cancelled"


async def test_cancel_finished_job_conflicts(client, feed_path):
    r = await upload(client, feed_path)

    r = await client.delete(f"/api/v1/imports/jobs/{r.json()['jobId']}")
    assert r.status_code == 409


async def test_cancel_unknown_job(client):
    r = await client.delete("/api/v1/imports/jobs/does-not-exist")
    assert r.status_code == 404


# ===================== HISTORY / STATS / INTEGRITY =====================


async def test_history_and_stats(client, feed_path):
    await upload(client, feed_path)

    r = await client.get("/api/v1/imports/history")
    assert r.status_code == 200
    history = r.json()
    assert len(history) == 3
    assert {h["sync_type"] for h in history} == {
        "api_upload:base", "api_upload:stocks", "api_upload:prices_images",
    }

    r = await client.get("/api/v1/imports/stats", params={"days": 1})
    assert r.status_code == 200
    assert r.json()["total_syncs"] == 3
    assert r.json()["items_processed"]["products"] == 3


async def test_stats_validates_days(client):
    r = await client.get("/api/v1/imports/stats", params={"days": 0})
    assert r.status_code == 422


async def test_integrity_after_import(client, feed_path):
    await upload(client, feed_path)

    r = await client.get("/api/v1/imports/integrity")
    assert r.status_code == 200
    body = r.json()
    assert body["is_clean"] is True
    assert body["orphan_total"] == 0
    assert body["counts"]["products"] == 3
