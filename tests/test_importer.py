import os
import time

import pytest

from conftest import make_wav_bytes
from musebox.core.models import Duplicate, ExtractionFailure, Failed, Imported, RawFile
from musebox.db import queries
from musebox.library import importer
from musebox.library.importer import ImportCoordinator, read_raw_file, summarize


@pytest.fixture
def coordinator(db, audio_store):
    return ImportCoordinator(db, audio_store, max_workers=3)


class TestDedup:
    def test_same_content_twice_yields_one_entry(self, coordinator, db):
        data = make_wav_bytes(freq=440)

        first = list(coordinator.import_batch([RawFile("one.wav", data)]))
        second = list(coordinator.import_batch([RawFile("copy of one.wav", data)]))

        assert isinstance(first[0], Imported)
        assert isinstance(second[0], Duplicate)
        assert second[0].track_id == first[0].track.id
        assert queries.count_tracks(db) == 1
        # existing metadata wins
        assert queries.get_tracks(db)[0].title == "one"

    def test_duplicates_inside_one_batch(self, coordinator, db):
        data = make_wav_bytes(freq=600)
        outcomes = list(coordinator.import_batch([
            RawFile("x.wav", data),
            RawFile("y.wav", data),
            RawFile("z.wav", make_wav_bytes(freq=700)),
        ]))
        summary = summarize(outcomes)
        assert summary.imported == 2
        assert summary.duplicates == 1
        assert queries.count_tracks(db) == 2

    def test_catalog_grows_by_at_most_one_per_unique_file(self, coordinator, db):
        files = [RawFile(f"f{i}.wav", make_wav_bytes(freq=200 + (i % 3) * 50)) for i in range(6)]
        before = queries.count_tracks(db)
        list(coordinator.import_batch(files))
        assert queries.count_tracks(db) - before == 3


class TestBatch:
    def test_partial_failure(self, coordinator, db):
        files = [
            RawFile("first.wav", make_wav_bytes(freq=300)),
            RawFile("second.mp3", b"corrupt bytes, not an audio container" * 4),
            RawFile("third.wav", make_wav_bytes(freq=900)),
        ]
        outcomes = list(coordinator.import_batch(files))

        assert len(outcomes) == 3
        failed = [o for o in outcomes if isinstance(o, Failed)]
        assert len(failed) == 1
        assert failed[0].filename == "second.mp3"
        assert sum(isinstance(o, Imported) for o in outcomes) == 2
        assert queries.count_tracks(db) == 2

    def test_empty_batch(self, coordinator):
        assert list(coordinator.import_batch([])) == []

    def test_import_batch_is_lazy(self, coordinator, db):
        gen = coordinator.import_batch([RawFile("lazy.wav", make_wav_bytes())])
        assert queries.count_tracks(db) == 0
        list(gen)
        assert queries.count_tracks(db) == 1

    def test_blob_written_and_track_fields(self, coordinator):
        data = make_wav_bytes(freq=523)
        (outcome,) = coordinator.import_batch([RawFile("Tune.wav", data)])
        track = outcome.track
        assert track.audio_path.endswith(f"{track.id}.wav")
        with open(track.audio_path, "rb") as f:
            assert f.read() == data
        assert track.file_name == "Tune.wav"
        assert track.title == "Tune"

    def test_added_at_strictly_increasing_with_frozen_clock(self, db, audio_store):
        coordinator = ImportCoordinator(db, audio_store, max_workers=1, clock=lambda: 1000.0)
        files = [RawFile(f"{i}.wav", make_wav_bytes(freq=100 + i * 10)) for i in range(3)]
        list(coordinator.import_batch(files))
        stamps = [t.added_at for t in queries.get_tracks(db)]
        assert stamps == [1000000, 1000001, 1000002]

    def test_slow_job_times_out(self, db, audio_store, monkeypatch):
        real_job = importer.run_extraction_job

        def slow_job(request):
            if request.filename == "slow.wav":
                time.sleep(1.0)
                return ExtractionFailure(request.filename, "should not be seen")
            return real_job(request)

        monkeypatch.setattr(importer, "run_extraction_job", slow_job)
        coordinator = ImportCoordinator(db, audio_store, max_workers=2, timeout_s=0.3)
        outcomes = list(coordinator.import_batch([
            RawFile("fast.wav", make_wav_bytes()),
            RawFile("slow.wav", make_wav_bytes(freq=880)),
        ]))

        by_name = {getattr(o, "filename", None) or o.track.file_name: o for o in outcomes}
        assert isinstance(by_name["fast.wav"], Imported)
        assert by_name["slow.wav"] == Failed("slow.wav", "timed out")

    def test_queued_jobs_do_not_use_up_the_timeout(self, db, audio_store, monkeypatch):
        real_job = importer.run_extraction_job

        def steady_job(request):
            time.sleep(0.15)
            return real_job(request)

        monkeypatch.setattr(importer, "run_extraction_job", steady_job)
        coordinator = ImportCoordinator(db, audio_store, max_workers=1, timeout_s=0.4)
        files = [RawFile(f"{i}.wav", make_wav_bytes(freq=150 + i * 40)) for i in range(4)]

        outcomes = list(coordinator.import_batch(files))

        assert [type(o) for o in outcomes] == [Imported] * 4
        assert queries.count_tracks(db) == 4

    def test_stuck_pool_fails_queued_files(self, db, audio_store, monkeypatch):
        real_job = importer.run_extraction_job

        def job(request):
            if request.filename == "stuck.wav":
                time.sleep(1.0)
            return real_job(request)

        monkeypatch.setattr(importer, "run_extraction_job", job)
        coordinator = ImportCoordinator(db, audio_store, max_workers=1, timeout_s=0.2)
        outcomes = list(coordinator.import_batch([
            RawFile("stuck.wav", make_wav_bytes(freq=410)),
            RawFile("waiting.wav", make_wav_bytes(freq=420)),
        ]))

        assert outcomes == [
            Failed("stuck.wav", "timed out"),
            Failed("waiting.wav", "no free worker"),
        ]

    def test_process_pool(self, db, audio_store):
        coordinator = ImportCoordinator(db, audio_store, max_workers=2, use_processes=True)
        outcomes = list(coordinator.import_batch([
            RawFile("p1.wav", make_wav_bytes(freq=260)),
            RawFile("p2.wav", make_wav_bytes(freq=270)),
            RawFile("broken.mp3", b"not audio at all" * 8),
        ]))

        summary = summarize(outcomes)
        assert summary.imported == 2
        assert [f.filename for f in summary.failed] == ["broken.mp3"]
        assert queries.count_tracks(db) == 2


class TestRemoveAndClear:
    def test_remove(self, coordinator, db):
        (outcome,) = coordinator.import_batch([RawFile("gone.wav", make_wav_bytes())])
        path = outcome.track.audio_path

        assert coordinator.remove(outcome.track.id) is True
        assert queries.get_track_by_id(db, outcome.track.id) is None
        assert not os.path.exists(path)
        assert coordinator.remove(outcome.track.id) is False

    def test_clear_all(self, coordinator, db, audio_store):
        list(coordinator.import_batch([
            RawFile("a.wav", make_wav_bytes(freq=100)),
            RawFile("b.wav", make_wav_bytes(freq=200)),
        ]))
        coordinator.clear_all()
        assert queries.get_tracks(db) == []
        assert os.listdir(audio_store.root) == []


def test_read_raw_file(tmp_path):
    p = tmp_path / "song.wav"
    p.write_bytes(b"abc")
    raw = read_raw_file(str(p))
    assert raw == RawFile("song.wav", b"abc")


def test_summarize_counts():
    summary = summarize([
        Failed("x", "bad"),
        Duplicate("id", "y"),
        Failed("z", "bad"),
    ])
    assert summary.imported == 0
    assert summary.duplicates == 1
    assert [f.filename for f in summary.failed] == ["x", "z"]
    assert summary.total == 3
