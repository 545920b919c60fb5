import os
import time

import pytest

from conftest import request_payload
from reconstructor.config import settings
from reconstructor.services.reconstructor import ReconstructionResult
from reconstructor.services.storage import UploadResult
from reconstructor.utils.exceptions import RecordingNotReadyError
from reconstructor.workers.tasks import (
    cleanup_stale_work_dirs,
    find_stale_work_dirs,
    reconstruct_recording_events,
)


class StubReconstructor:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error

    async def reconstruct(self, params, work_dir=None):
        if self.error is not None:
            raise self.error
        return self.result


class StubStorage:
    def __init__(self, result):
        self.result = result
        self.uploads = []

    async def upload_events(self, events_path, project_id, session_id):
        self.uploads.append((events_path, project_id, session_id))
        return self.result


def done(path="/tmp/rrvideo-a/recording-rec-123.json"):
    return ReconstructionResult(events_file_path=path, device_width=800, device_height=600, event_count=3)


@pytest.mark.asyncio
async def test_successful_job_reports_file_and_viewport(monkeypatch):
    monkeypatch.setattr(settings, "supabase_url", None)
    ctx = {"reconstructor": StubReconstructor(result=done())}

    result = await reconstruct_recording_events(ctx, request_payload())

    assert result == {
        "success": True,
        "recording_id": "rec-123",
        "events_file_path": "/tmp/rrvideo-a/recording-rec-123.json",
        "device_width": 800,
        "device_height": 600,
        "event_count": 3,
    }


@pytest.mark.asyncio
async def test_failed_job_reports_stage_and_retry_hint():
    ctx = {"reconstructor": StubReconstructor(error=RecordingNotReadyError("No snapshot sources"))}

    result = await reconstruct_recording_events(ctx, request_payload())

    assert result == {
        "success": False,
        "error": "No snapshot sources",
        "stage": "listing",
        "retry_later": True,
    }


@pytest.mark.asyncio
async def test_invalid_payload_is_reported():
    result = await reconstruct_recording_events({}, {"sourceHost": "https://ph.example.com"})

    assert result["success"] is False
    assert result["error"].startswith("Invalid payload")


@pytest.mark.asyncio
async def test_events_are_uploaded_when_storage_is_available():
    storage = StubStorage(UploadResult(success=True, url="https://sb.test/events/p1/s1.json"))
    ctx = {"reconstructor": StubReconstructor(result=done()), "storage": storage}

    result = await reconstruct_recording_events(ctx, request_payload(projectId="p1", sessionId="s1"))

    assert storage.uploads == [("/tmp/rrvideo-a/recording-rec-123.json", "p1", "s1")]
    assert result["events_url"] == "https://sb.test/events/p1/s1.json"


@pytest.mark.asyncio
async def test_upload_failure_keeps_the_job_successful():
    storage = StubStorage(UploadResult(success=False, error="Upload failed: 500"))
    ctx = {"reconstructor": StubReconstructor(result=done()), "storage": storage}

    result = await reconstruct_recording_events(ctx, request_payload(projectId="p1", sessionId="s1"))

    assert result["success"] is True
    assert "events_url" not in result


@pytest.mark.asyncio
async def test_upload_needs_project_and_session():
    storage = StubStorage(UploadResult(success=True, url="unused"))
    ctx = {"reconstructor": StubReconstructor(result=done()), "storage": storage}

    await reconstruct_recording_events(ctx, request_payload(projectId="p1"))

    assert storage.uploads == []


def make_dir(root, name, age_minutes):
    path = root / name
    path.mkdir()
    stamp = time.time() - age_minutes * 60
    os.utime(str(path), (stamp, stamp))
    return str(path)


def test_only_old_work_dirs_are_stale(tmp_path):
    old = make_dir(tmp_path, "rrvideo-old", 300)
    make_dir(tmp_path, "rrvideo-new", 5)
    make_dir(tmp_path, "someone-else", 300)
    (tmp_path / "rrvideo-file").write_text("x")

    assert find_stale_work_dirs(str(tmp_path), 180) == [old]


def test_missing_root_has_no_stale_dirs(tmp_path):
    assert find_stale_work_dirs(str(tmp_path / "missing"), 180) == []


@pytest.mark.asyncio
async def test_cleanup_removes_stale_dirs(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "reconstruction_work_root", str(tmp_path))
    old = make_dir(tmp_path, "rrvideo-old", 300)
    (tmp_path / "rrvideo-old" / "recording-x.json").write_text("[]")
    os.utime(old, (time.time() - 300 * 60,) * 2)
    fresh = make_dir(tmp_path, "rrvideo-new", 1)

    result = await cleanup_stale_work_dirs({})

    assert result == {"success": True, "removed": 1}
    assert not os.path.exists(old)
    assert os.path.isdir(fresh)
