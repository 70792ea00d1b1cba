from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from dub_agent.config import ServiceConfig
from dub_agent.service import DubbingService
from dub_agent.tracker import JobTracker
from dub_agent.types import Segment
from dub_agent.web import create_app, progress_events

from conftest import FakeTranslator

SEGMENTS = [Segment(0.0, 2.0, "你好"), Segment(3.0, 5.0, "再见")]


@pytest.fixture
def service_config(tmp_path, pipeline_config):
    return ServiceConfig(
        pipeline=pipeline_config,
        upload_dir=tmp_path / "uploads",
        output_dir=tmp_path / "output",
        max_workers=1,
        poll_interval=0.0,
    )


def _submit(client):
    response = client.post("/dub", files={"video": ("clip.mp4", b"fake video", "video/mp4")})
    assert response.status_code == 200, response.text
    return response.json()["jobId"]


def test_submit_run_and_download_once(make_agent, service_config):
    service = DubbingService(make_agent(SEGMENTS), service_config)

    with TestClient(create_app(service)) as client:
        job_id = _submit(client)
        service.shutdown(wait=True)

        assert service.tracker.progress(job_id) == 100
        artifact = service.tracker.output(job_id)
        assert artifact == service_config.output_dir / f"{job_id}.mp4"
        assert list(service_config.upload_dir.iterdir()) == []

        first = client.get("/dub/download", params={"job": job_id})
        assert first.status_code == 200
        assert first.content == b"\x00"
        assert "dubbed.mp4" in first.headers["content-disposition"]
        assert not artifact.exists()
        assert service.tracker.progress(job_id) is None

        second = client.get("/dub/download", params={"job": job_id})
        assert second.status_code == 404


def test_failed_job_is_visible_only_through_progress(make_agent, service_config):
    agent = make_agent(SEGMENTS, translator=FakeTranslator(fail_on="再见"))
    service = DubbingService(agent, service_config)

    with TestClient(create_app(service)) as client:
        job_id = _submit(client)
        service.shutdown(wait=True)

        assert service.tracker.progress(job_id) == -1
        assert client.get("/dub/download", params={"job": job_id}).status_code == 404
        assert list(service_config.output_dir.iterdir()) == []


def test_unknown_jobs_are_not_found(make_agent, service_config):
    service = DubbingService(make_agent(SEGMENTS), service_config)

    with TestClient(create_app(service)) as client:
        assert client.get("/dub/progress/missing").status_code == 404
        assert client.get("/dub/download", params={"job": "missing"}).status_code == 404


def test_job_is_registered_before_it_runs(service_config):
    tracker = JobTracker()
    seen = []

    class ObservingAgent:
        def run_job(self, job_id, video_path, tracker, output_path):
            seen.append(tracker.progress(job_id))
            tracker.fail(job_id)

    service = DubbingService(ObservingAgent(), service_config, tracker=tracker, id_factory=lambda: "fixed")
    upload = service_config.upload_dir / "in.mp4"
    upload.write_bytes(b"x")

    assert service.submit(upload) == "fixed"
    service.shutdown(wait=True)

    assert seen == [0]
    assert tracker.progress("fixed") == -1
    assert not upload.exists()


def test_submit_after_shutdown_fails_job_and_removes_upload(make_agent, service_config):
    tracker = JobTracker()
    service = DubbingService(make_agent(SEGMENTS), service_config, tracker=tracker, id_factory=lambda: "late")
    service.shutdown(wait=True)
    upload = service_config.upload_dir / "in.mp4"
    upload.write_bytes(b"x")

    with pytest.raises(RuntimeError):
        service.submit(upload)

    assert tracker.progress("late") == -1
    assert not upload.exists()


def test_expired_jobs_are_swept_on_submit(make_agent, service_config):
    service_config.job_ttl_seconds = 0.0
    tracker = JobTracker()
    abandoned = service_config.output_dir / "old.mp4"
    service = DubbingService(make_agent(SEGMENTS), service_config, tracker=tracker)
    abandoned.write_bytes(b"x")
    tracker.create("old")
    tracker.complete("old", abandoned)

    upload = service_config.upload_dir / "in.mp4"
    upload.write_bytes(b"x")
    service.submit(upload)
    service.shutdown(wait=True)

    assert "old" not in tracker
    assert not abandoned.exists()


async def _collect(tracker, job_id, steps):
    events = []
    async for event in progress_events(tracker, job_id, 0):
        events.append(event["data"])
        if steps:
            steps.pop(0)()
    return events


def test_progress_stream_stops_on_completion():
    tracker = JobTracker()
    tracker.create("job")
    tracker.update("job", 50)
    steps = [lambda: tracker.update("job", 80), lambda: tracker.complete("job", "out.mp4")]

    assert asyncio.run(_collect(tracker, "job", steps)) == ["50", "80", "100"]


def test_progress_stream_stops_on_failure():
    tracker = JobTracker()
    tracker.create("job")
    steps = [lambda: tracker.fail("job")]

    assert asyncio.run(_collect(tracker, "job", steps)) == ["0", "-1"]


def test_progress_stream_for_retired_job_is_empty():
    tracker = JobTracker()
    tracker.create("job")
    tracker.complete("job", "out.mp4")
    tracker.fetch_and_retire("job")

    assert asyncio.run(_collect(tracker, "job", [])) == []
