import threading

import pytest

from capture import ImageEntry, to_data_url
from jobs import (
    EXTRACTION_ERROR_MESSAGE,
    EXTRACTION_FAILED,
    NO_IMAGE_MESSAGE,
    NO_TEXT_FOUND,
    ErrorState,
    JobOrchestrator,
    ResultCollection,
)


def make_entry(name: str) -> ImageEntry:
    data = name.encode("utf-8")
    return ImageEntry(name=name, data=data, mime_type="image/png", encoded_payload=to_data_url(data, "image/png"))


@pytest.fixture
def collection():
    return ResultCollection()


@pytest.fixture
def errors():
    return ErrorState()


def run_all(orchestrator, entries):
    workers = [orchestrator.dispatch(entry) for entry in entries]
    for worker in workers:
        worker.join(5)
    return workers


def test_dispatch_success(collection, errors):
    changes = []
    orchestrator = JobOrchestrator(collection, errors, extract=lambda payload: "hello", on_change=lambda: changes.append(1))
    entry = make_entry("a.png")
    run_all(orchestrator, [entry])

    [result] = collection.results
    assert result.entry is entry
    assert result.text == "hello"
    assert result.succeeded
    assert orchestrator.outstanding == 0
    assert not orchestrator.is_extracting
    assert changes == [1]


def test_dispatch_empty_text_uses_sentinel(collection, errors):
    orchestrator = JobOrchestrator(collection, errors, extract=lambda payload: "")
    run_all(orchestrator, [make_entry("a.png")])
    assert collection.texts == [NO_TEXT_FOUND]


def test_dispatch_text_kept_verbatim(collection, errors):
    orchestrator = JobOrchestrator(collection, errors, extract=lambda payload: "  line 1\nline 2 ")
    run_all(orchestrator, [make_entry("a.png")])
    assert collection.texts == ["  line 1\nline 2 "]


def test_dispatch_failure(collection, errors):
    notes = []

    def fail(payload):
        raise RuntimeError("model unavailable")

    orchestrator = JobOrchestrator(collection, errors, extract=fail, notify=notes.append)
    run_all(orchestrator, [make_entry("a.png")])

    [result] = collection.results
    assert result.text == EXTRACTION_FAILED
    assert not result.succeeded
    assert errors.message == EXTRACTION_ERROR_MESSAGE
    assert [n.title for n in notes] == ["Extraction Error"]
    assert notes[0].destructive
    assert orchestrator.outstanding == 0


def test_dispatch_without_payload(collection, errors):
    orchestrator = JobOrchestrator(collection, errors, extract=lambda payload: "x")
    entry = ImageEntry(name="blank", data=b"", mime_type="image/png", encoded_payload="")
    assert orchestrator.dispatch(entry) is None
    assert errors.message == NO_IMAGE_MESSAGE
    assert collection.entries == []
    assert orchestrator.outstanding == 0


def test_one_result_per_image(collection, errors):
    bad = make_entry("bad.png")

    def extract(payload):
        if payload == bad.encoded_payload:
            raise RuntimeError("boom")
        return "ok"

    orchestrator = JobOrchestrator(collection, errors, extract=extract)
    entries = [make_entry(f"{i}.png") for i in range(5)] + [bad]
    run_all(orchestrator, entries)

    assert len(collection) == len(entries)
    assert {id(r.entry) for r in collection.results} == {id(e) for e in entries}
    assert sum(1 for r in collection.results if not r.succeeded) == 1


def test_results_follow_completion_order(collection, errors):
    a, b = make_entry("a.png"), make_entry("b.png")
    release_a = threading.Event()

    def extract(payload):
        if payload == a.encoded_payload:
            release_a.wait(5)
            return "text A"
        return "text B"

    orchestrator = JobOrchestrator(collection, errors, extract=extract)
    worker_a = orchestrator.dispatch(a)
    worker_b = orchestrator.dispatch(b)

    worker_b.join(5)
    assert collection.texts == ["text B"]
    assert orchestrator.outstanding == 1
    assert orchestrator.is_extracting

    release_a.set()
    worker_a.join(5)
    assert collection.texts == ["text B", "text A"]
    assert collection.entries == [a, b]
    assert orchestrator.outstanding == 0


def test_failures_share_last_error(collection, errors):
    def fail(payload):
        raise RuntimeError("nope")

    notes = []
    orchestrator = JobOrchestrator(collection, errors, extract=fail, notify=notes.append)
    run_all(orchestrator, [make_entry("a.png"), make_entry("b.png")])
    assert collection.texts == [EXTRACTION_FAILED, EXTRACTION_FAILED]
    assert errors.message == EXTRACTION_ERROR_MESSAGE
    assert len(notes) == 2


def test_reset_drops_late_results(collection, errors):
    release = threading.Event()

    def extract(payload):
        release.wait(5)
        return "late"

    orchestrator = JobOrchestrator(collection, errors, extract=extract)
    worker = orchestrator.dispatch(make_entry("a.png"))
    assert orchestrator.outstanding == 1

    orchestrator.reset()
    assert collection.entries == []
    assert orchestrator.outstanding == 0

    release.set()
    worker.join(5)
    assert orchestrator.outstanding == 0
    assert len(collection) == 0


def test_remove_at_keeps_order(collection, errors):
    orchestrator = JobOrchestrator(collection, errors, extract=lambda payload: payload[-4:])
    entries = [make_entry(name) for name in ("one", "two", "three", "four")]
    for entry in entries:
        orchestrator.dispatch(entry).join(5)

    before = collection.results
    removed = collection.remove_at(1)
    assert removed is before[1]
    assert collection.results == [before[0], before[2], before[3]]
    assert removed.entry not in collection.entries
    assert len(collection.entries) == 3


def test_remove_at_out_of_range(collection):
    with pytest.raises(IndexError):
        collection.remove_at(0)


def test_copy(collection, errors):
    orchestrator = JobOrchestrator(collection, errors, extract=lambda payload: "copied text")
    run_all(orchestrator, [make_entry("a.png")])

    written = []
    assert collection.copy(0, written.append)
    assert written == ["copied text"]


def test_copy_failure_does_not_mutate(collection, errors):
    orchestrator = JobOrchestrator(collection, errors, extract=lambda payload: "copied text")
    run_all(orchestrator, [make_entry("a.png")])

    def broken(text):
        raise RuntimeError("clipboard locked")

    assert not collection.copy(0, broken)
    assert collection.texts == ["copied text"]


def test_error_state():
    state = ErrorState()
    assert state.message == ""
    state.set("first")
    state.set("second")
    assert state.message == "second"
    state.clear()
    assert state.message == ""


def test_reset_with_worker_settling_during_clear(errors):
    release = threading.Event()

    def extract(payload):
        release.wait(5)
        return "late"

    class SettlingCollection(ResultCollection):
        """Lets the in-flight worker finish right after the lists are emptied."""

        def clear(self):
            super().clear()
            release.set()
            worker.join(0.2)

    collection = SettlingCollection()
    orchestrator = JobOrchestrator(collection, errors, extract=extract)
    worker = orchestrator.dispatch(make_entry("a.png"))

    orchestrator.reset()
    worker.join(5)
    assert collection.texts == []
    assert collection.entries == []
    assert orchestrator.outstanding == 0
