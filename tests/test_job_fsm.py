from uuid import uuid4

import pytest

from song_service.domain.job_fsm import allowed_next_statuses, ensure_transition, is_terminal
from song_service.errors import JobNotFound, JobTransitionError
from song_service.models.domain import SongJobStatus


@pytest.mark.parametrize("target", [SongJobStatus.COMPLETED, SongJobStatus.FAILED])
def test_processing_moves_to_terminal_states(target):
    ensure_transition(SongJobStatus.PROCESSING, target)


@pytest.mark.parametrize("terminal", [SongJobStatus.COMPLETED, SongJobStatus.FAILED])
@pytest.mark.parametrize("target", list(SongJobStatus))
def test_terminal_states_never_move(terminal, target):
    assert is_terminal(terminal)
    assert allowed_next_statuses(terminal) == []
    if target == terminal:
        ensure_transition(terminal, target)
        return
    with pytest.raises(JobTransitionError) as excinfo:
        ensure_transition(terminal, target)
    assert excinfo.value.allowed_next == []


def test_allowed_next_statuses_are_ordered():
    assert allowed_next_statuses(SongJobStatus.PROCESSING) == [SongJobStatus.COMPLETED, SongJobStatus.FAILED]


def test_repository_enforces_lifecycle(repo, make_job):
    job = make_job(status=SongJobStatus.PROCESSING)

    repo.update(job.id, status=SongJobStatus.FAILED, error="boom")
    with pytest.raises(JobTransitionError):
        repo.update(job.id, status=SongJobStatus.COMPLETED)

    stored = repo.get(job.id)
    assert stored.status == SongJobStatus.FAILED
    assert stored.error == "boom"


def test_repository_rewriting_terminal_status_is_noop(repo, make_job):
    job = make_job(status=SongJobStatus.COMPLETED)
    updated = repo.update(job.id, status="completed", audio_url="https://cdn.test/a.mp3")
    assert updated.status == SongJobStatus.COMPLETED
    assert updated.audio_url == "https://cdn.test/a.mp3"


def test_repository_hands_out_copies(repo, make_job):
    job = make_job()
    copy = repo.get(job.id)
    copy.title = "mutated"
    assert repo.get(job.id).title == job.title


def test_repository_update_unknown_job(repo):
    with pytest.raises(JobNotFound):
        repo.update(uuid4(), published=True)


def test_repository_increment_and_list(repo, make_job):
    first = make_job(owner_id="alice")
    make_job(owner_id="bob")
    assert repo.increment(first.id, "listen_count") == 1
    assert repo.increment(first.id, "listen_count") == 2
    assert repo.get(first.id).listen_count == 2
    assert [job.id for job in repo.list(owner_id="alice")] == [first.id]
    assert len(repo.list()) == 2
