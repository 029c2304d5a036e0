"""Shared fixtures for analysis_uploader tests."""
from pathlib import Path

import pytest

from analysis_uploader.models import UploadJob


def make_job(path: Path, job_id: str = "abcDEF123456", is_portrait: bool = True) -> UploadJob:
    return UploadJob(
        id=job_id,
        local_file_ref=path,
        content_type="video/mp4",
        is_portrait=is_portrait,
        owner_identity="lifter@example.com",
        size=path.stat().st_size if path.exists() else 0,
    )


@pytest.fixture
def video_file(tmp_path) -> Path:
    path = tmp_path / "deadlift.mp4"
    path.write_bytes(bytes(range(10)))
    return path


@pytest.fixture
def job(video_file) -> UploadJob:
    return make_job(video_file)
