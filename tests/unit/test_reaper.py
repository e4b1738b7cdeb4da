"""Tests for the scheduled artifact reaper."""

import asyncio
import os
import time

import pytest

from multiconvert.services.artifact_store import ArtifactStore
from multiconvert.services.reaper import ArtifactReaper


def _write_aged(store: ArtifactStore, suffix: str, age_seconds: float):
    path = store.allocate(suffix)
    path.write_bytes(b"data")
    stamp = time.time() - age_seconds
    os.utime(path, (stamp, stamp))
    return path


class TestReaper:
    """Tests for ArtifactReaper."""

    def test_rejects_non_positive_interval(self, artifact_store: ArtifactStore):
        with pytest.raises(ValueError):
            ArtifactReaper(artifact_store, interval_seconds=0)

    def test_run_once_deletes_expired(self, artifact_store: ArtifactStore):
        old = _write_aged(artifact_store, ".jpg", 120)
        fresh = _write_aged(artifact_store, ".jpg", 0)
        reaper = ArtifactReaper(artifact_store, interval_seconds=60)

        assert reaper.run_once() == 1
        assert not old.exists()
        assert fresh.exists()

    async def test_start_and_stop(self, artifact_store: ArtifactStore):
        reaper = ArtifactReaper(artifact_store, interval_seconds=60)

        reaper.start()
        assert reaper.running is True
        reaper.start()  # second start is a no-op

        await reaper.stop(final_sweep=False)
        assert reaper.running is False

    async def test_loop_sweeps_each_interval(self, artifact_store: ArtifactStore):
        reaper = ArtifactReaper(artifact_store, interval_seconds=0.05)
        old = _write_aged(artifact_store, ".mp3", 10)

        reaper.start()
        await asyncio.sleep(0.2)
        await reaper.stop(final_sweep=False)

        assert not old.exists()

    async def test_final_sweep_on_stop(self, artifact_store: ArtifactStore):
        reaper = ArtifactReaper(artifact_store, interval_seconds=60)
        old = _write_aged(artifact_store, ".pdf", 120)
        reaper.start()

        await reaper.stop(final_sweep=True)

        assert not old.exists()

    async def test_loop_survives_sweep_errors(
        self, artifact_store: ArtifactStore, monkeypatch: pytest.MonkeyPatch
    ):
        calls = []

        def broken_sweep(max_age):
            calls.append(max_age)
            raise OSError("disk gone")

        monkeypatch.setattr(artifact_store, "sweep", broken_sweep)
        reaper = ArtifactReaper(artifact_store, interval_seconds=0.02)

        reaper.start()
        await asyncio.sleep(0.15)
        assert reaper.running is True
        await reaper.stop(final_sweep=False)

        assert len(calls) >= 2
