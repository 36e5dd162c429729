import pytest
from api.app import create_app
from core.errors import JobNotFoundError, JobNotResumableError, RecordNotFoundError
from fastapi.testclient import TestClient
from jobs.events import EventBroadcaster
from models.job_models import Job, JobEventType, JobStatus, JobStatusView


class FakeSupervisor:
    def __init__(self):
        self.events = EventBroadcaster()
        self.jobs = {"done": Job(id="done", project_id="p", status=JobStatus.COMPLETED)}
        self.started = []
        self.shut_down = False

    async def start(self, spec):
        if spec.project_id != "p":
            raise RecordNotFoundError("Project", spec.project_id)
        self.started.append(spec)
        return "job-1"

    async def status(self, job_id):
        if job_id not in self.jobs:
            raise JobNotFoundError(job_id)
        return JobStatusView(job=self.jobs[job_id], frozen=False)

    async def attach(self, job_id):
        stream = self.events.subscribe(job_id)
        stream.push(self.events.make_event(job_id, JobEventType.COMPLETE, replayed=True))
        return stream

    async def resume(self, job_id):
        if job_id == "busy":
            raise JobNotResumableError("Job busy is running elsewhere")
        if job_id not in self.jobs:
            raise JobNotFoundError(job_id)
        return await self.attach(job_id)

    async def cancel(self, job_id):
        if job_id not in self.jobs:
            raise JobNotFoundError(job_id)
        return False

    async def shutdown(self):
        self.shut_down = True


@pytest.fixture
def supervisor():
    return FakeSupervisor()


@pytest.fixture
def client(supervisor):
    with TestClient(create_app(supervisor)) as c:
        yield c


def test_start_translation_returns_job_id(client, supervisor):
    response = client.post("/projects/p/translations", json={"target_language": "en"})
    assert response.status_code == 201
    assert response.json() == {"job_id": "job-1"}
    assert supervisor.started[0].target_language == "en"
    assert supervisor.started[0].source_language is None


def test_start_translation_for_unknown_project_is_404(client):
    response = client.post("/projects/zzz/translations", json={"target_language": "en"})
    assert response.status_code == 404


def test_start_translation_requires_target_language(client):
    assert client.post("/projects/p/translations", json={}).status_code == 422


def test_job_status(client):
    body = client.get("/jobs/done").json()
    assert body["job"]["status"] == "completed"
    assert body["frozen"] is False
    assert client.get("/jobs/missing").status_code == 404


def test_events_stream_starts_with_status_frame(client):
    response = client.get("/jobs/done/events")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    text = response.text
    assert text.startswith("event: status\n")
    assert "event: complete\n" in text
    assert '"replayed":true' in text


def test_resume_conflict_maps_to_409(client):
    assert client.post("/jobs/busy/resume").status_code == 409
    assert client.post("/jobs/missing/resume").status_code == 404


def test_resume_of_completed_job_replays(client):
    response = client.post("/jobs/done/resume")
    assert response.status_code == 200
    assert "event: complete" in response.text


def test_cancel(client):
    assert client.post("/jobs/done/cancel").json() == {"job_id": "done", "cancelled": False}
    assert client.post("/jobs/missing/cancel").status_code == 404


def test_shutdown_on_lifespan_exit(supervisor):
    with TestClient(create_app(supervisor)):
        pass
    assert supervisor.shut_down is True
