"""Tests for analysis_uploader models."""
import pytest

from analysis_uploader.models import (
    AnalysisResult,
    MiB,
    OrchestratorSnapshot,
    OrchestratorState,
    ProcessingState,
    ProcessingStatus,
    TransferProgress,
    UploadConfig,
)


class TestProcessingState:
    def test_parse_known_states(self):
        assert ProcessingState.parse("processing") is ProcessingState.PROCESSING
        assert ProcessingState.parse("COMPLETE") is ProcessingState.COMPLETE
        assert ProcessingState.parse(" error ") is ProcessingState.ERROR

    def test_parse_unknown_counts_as_processing(self):
        assert ProcessingState.parse("transcoding") is ProcessingState.PROCESSING
        assert ProcessingState.parse(None) is ProcessingState.PROCESSING

    def test_rank_orders_states(self):
        assert ProcessingState.QUEUED.rank < ProcessingState.PROCESSING.rank
        assert ProcessingState.PROCESSING.rank < ProcessingState.COMPLETE.rank
        assert ProcessingState.COMPLETE.rank == ProcessingState.ERROR.rank

    def test_terminal(self):
        assert ProcessingStatus("j", ProcessingState.ERROR).is_terminal is True
        assert ProcessingStatus("j", ProcessingState.QUEUED).is_terminal is False


class TestTransferProgress:
    def test_percentage(self):
        assert TransferProgress(25_000_000, 50_000_000).percentage == 50.0
        assert TransferProgress(50_000_000, 50_000_000).percentage == 100.0

    def test_empty_total_is_complete(self):
        assert TransferProgress(0, 0).percentage == 100.0


class TestAnalysisResult:
    def test_success(self):
        result = AnalysisResult.success({"metrics": {"total_score": 81.5}})
        assert result.ok is True
        assert result.status == "success"
        assert result.reason is None

    def test_failure(self):
        result = AnalysisResult.failure("no person detected")
        assert result.ok is False
        assert result.reason == "no person detected"

    def test_immutable(self):
        result = AnalysisResult.success({})
        with pytest.raises(Exception):
            result.status = "error"


class TestUploadConfig:
    def test_defaults(self):
        config = UploadConfig()
        assert config.strategy == "direct"
        assert config.chunk_size == 150 * MiB
        assert config.poll_interval == 5.0
        assert config.record_failure_policy == "continue"

    def test_resumable_requires_endpoint(self):
        with pytest.raises(ValueError, match="resumable_endpoint"):
            UploadConfig(strategy="resumable")
        config = UploadConfig(strategy="resumable", resumable_endpoint="https://app/api/upload")
        assert config.resumable_endpoint == "https://app/api/upload"

    def test_rejects_unknown_values(self):
        with pytest.raises(ValueError):
            UploadConfig(strategy="ftp")
        with pytest.raises(ValueError):
            UploadConfig(record_failure_policy="ignore")
        with pytest.raises(ValueError):
            UploadConfig(poll_interval=0)
        with pytest.raises(ValueError):
            UploadConfig(chunk_size=0)


def test_snapshot_defaults():
    snapshot = OrchestratorSnapshot()
    assert snapshot.state is OrchestratorState.IDLE
    assert snapshot.job_id is None
    assert OrchestratorState.FAILED.is_terminal is True
    assert OrchestratorState.UPLOADING.is_terminal is False
