"""Tests for API endpoints."""
import pytest
from unittest.mock import patch

from flight_extractor.scrapers.records import ExtractionJob
from flight_extractor.services.batch_state import BatchState

LISTING_URL = (
    "https://www.makemytrip.com/flight/search"
    "?itinerary=BLR-PAT-01/06/2026&tripType=O&paxType=A-1_C-0_I-0&intl=false&cabinClass=E"
)


class TestHealthEndpoint:
    async def test_health_check(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["database"] == "healthy"
        assert data["extraction_running"] is False

    async def test_ping(self, client):
        response = await client.get("/ping")
        assert response.json() == {"status": "ok"}


class TestTriggerSingle:
    async def test_single_listing_returns_payload(self, client, listing_page, tmp_path):
        response = await client.post("/api/extract", json={"action": "extractFlights", "url": LISTING_URL})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert "error" not in data
        assert data["data"]["metadata"]["record_count"] == 2
        assert data["data"]["metadata"]["execution_time_formatted"].endswith("s")
        assert [r["flight_code"] for r in data["data"]["records"]] == ["6E 201", "AI 805"]
        assert listing_page.goto_calls == [LISTING_URL]
        assert len(list((tmp_path / "exports").glob("flight-data-one_way-*.json"))) == 1

    async def test_structure_failure_reported_as_error(self, client, listing_page):
        listing_page.selectors = {}

        response = await client.post("/api/extract", json={"action": "extractFlights", "url": LISTING_URL})

        data = response.json()
        assert data["success"] is False
        assert "container" in data["error"]

    async def test_logs_downloadable_after_run(self, client):
        await client.post("/api/extract", json={"action": "extractFlights", "url": LISTING_URL})

        response = await client.get("/api/logs")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "[INFO]" in response.text

    async def test_results_of_last_run(self, client):
        await client.post("/api/extract", json={"action": "extractFlights", "url": LISTING_URL})

        response = await client.get("/api/results")

        assert response.status_code == 200
        assert response.json()[0]["metadata"]["status"] == "success"

    async def test_unknown_action(self, client):
        response = await client.post("/api/extract", json={"action": "extractTrains", "url": LISTING_URL})
        data = response.json()
        assert data["success"] is False
        assert "Unknown action" in data["error"]

    async def test_international_needs_url_or_routes(self, client):
        response = await client.post("/api/extract", json={"action": "extractInternationalRoundTrip"})
        data = response.json()
        assert data["success"] is False
        assert "url" in data["error"]


class TestSchedulerStopped:
    async def test_batch_rejected_without_scheduler(self, client, service):
        with patch("flight_extractor.services.extraction_service.scheduler_running", return_value=False), \
                patch("flight_extractor.services.extraction_service.schedule_batch_run") as schedule:
            response = await client.post("/api/extract", json={
                "action": "extractFlights",
                "routes": [{"source": "BLR", "dest": "PAT"}],
                "date_offsets": [1],
            })

        data = response.json()
        assert data["success"] is False
        assert "scheduler" in data["error"]
        schedule.assert_not_called()
        assert service.busy is False
        assert service.batch_state() is None

    async def test_later_single_run_still_accepted(self, client):
        with patch("flight_extractor.services.extraction_service.scheduler_running", return_value=False):
            await client.post("/api/extract", json={"action": "extractFlights"})
            response = await client.post("/api/extract", json={"action": "extractFlights", "url": LISTING_URL})

        assert response.json()["success"] is True

    def test_pending_batch_not_resumed(self, service, store):
        store.save(BatchState(jobs=[ExtractionJob("BLR", "PAT", 1)]))

        with patch("flight_extractor.services.extraction_service.scheduler_running", return_value=False), \
                patch("flight_extractor.services.extraction_service.schedule_batch_run") as schedule:
            assert service.resume_pending() is False

        schedule.assert_not_called()
        assert service.busy is False
        assert store.load() is not None


class TestTriggerBatch:
    @pytest.fixture(autouse=True)
    def scheduler_up(self):
        with patch("flight_extractor.services.extraction_service.scheduler_running", return_value=True):
            yield

    async def test_default_matrix_without_routes_or_url(self, client, service):
        with patch("flight_extractor.services.extraction_service.schedule_batch_run") as schedule:
            response = await client.post("/api/extract", json={"action": "extractFlights"})

        data = response.json()
        assert data["success"] is True
        assert data["total_combinations"] == 20
        schedule.assert_called_once()
        jobs = service.batch_state().jobs
        assert (jobs[0].origin, jobs[0].destination, jobs[0].date_offset_days) == ("BLR", "PAT", 1)
        assert (jobs[-1].origin, jobs[-1].destination, jobs[-1].date_offset_days) == ("BOM", "AMD", 30)

    async def test_pending_batch_resumed_when_scheduler_runs(self, service, store):
        store.save(BatchState(jobs=[ExtractionJob("BLR", "PAT", 1)]))

        with patch("flight_extractor.services.extraction_service.schedule_batch_run") as schedule:
            assert service.resume_pending() is True

        schedule.assert_called_once()
        assert service.busy is True

    async def test_batch_queued_in_background(self, client, service):
        with patch("flight_extractor.services.extraction_service.schedule_batch_run") as schedule:
            response = await client.post("/api/extract", json={
                "action": "extractFlights",
                "routes": [{"source": "BLR", "dest": "PAT"}, {"source": "ixl", "dest": "del"}],
                "date_offsets": [1, 7],
            })

        data = response.json()
        assert data["success"] is True
        assert data["total_combinations"] == 4
        assert "4" in data["message"]
        schedule.assert_called_once()
        assert schedule.call_args.args[0] == service.run_batch

        state = service.batch_state()
        assert state.total == 4
        assert state.current_index == 0

    async def test_default_offsets_used(self, client, service):
        with patch("flight_extractor.services.extraction_service.schedule_batch_run"):
            response = await client.post("/api/extract", json={
                "action": "extractFlights",
                "routes": [{"source": "BLR", "dest": "PAT"}],
            })

        assert response.json()["total_combinations"] == 4

    async def test_international_action_forces_round_trip(self, client, service):
        with patch("flight_extractor.services.extraction_service.schedule_batch_run"):
            await client.post("/api/extract", json={
                "action": "extractInternationalRoundTrip",
                "routes": [{"source": "DEL", "dest": "DXB"}],
                "date_offsets": [14],
            })

        job = service.batch_state().jobs[0]
        assert job.trip_kind == "round_trip"
        assert job.international is True

    async def test_second_trigger_rejected_while_running(self, client):
        body = {"action": "extractFlights", "routes": [{"source": "BLR", "dest": "PAT"}], "date_offsets": [1]}
        with patch("flight_extractor.services.extraction_service.schedule_batch_run"):
            await client.post("/api/extract", json=body)
            response = await client.post("/api/extract", json=body)

        data = response.json()
        assert data["success"] is False
        assert "already running" in data["error"]

    async def test_invalid_airport_code(self, client):
        response = await client.post("/api/extract", json={
            "action": "extractFlights",
            "routes": [{"source": "BLRX", "dest": "PAT"}],
        })
        assert response.status_code == 422

    async def test_negative_offset_rejected(self, client):
        response = await client.post("/api/extract", json={
            "action": "extractFlights",
            "routes": [{"source": "BLR", "dest": "PAT"}],
            "date_offsets": [-1],
        })
        assert response.status_code == 422

    async def test_queued_batch_runs_to_completion(self, client, service, listing_page):
        with patch("flight_extractor.services.extraction_service.schedule_batch_run") as schedule:
            await client.post("/api/extract", json={
                "action": "extractFlights",
                "routes": [{"source": "BLR", "dest": "PAT"}],
                "date_offsets": [1],
            })
        func, ctx = schedule.call_args.args

        results = await func(ctx)

        assert [r.status for r in results] == ["success"]
        assert len(listing_page.goto_calls) == 1
        assert service.batch_state() is None
        assert service.busy is False

        progress = (await client.get("/api/progress")).json()
        assert progress["finished"] is True
        assert progress["completed"] == 1
        assert progress["percent"] == 100


class TestBatchEndpoints:
    async def test_no_batch(self, client):
        response = await client.get("/api/batch")
        assert response.status_code == 404

    async def test_get_and_cancel_batch(self, client, store):
        store.save(BatchState(
            jobs=[ExtractionJob("BLR", "PAT", 1), ExtractionJob("BLR", "PAT", 7)],
            current_index=1,
            batch_id="b1",
        ))

        response = await client.get("/api/batch")
        assert response.status_code == 200
        data = response.json()
        assert data["batch_id"] == "b1"
        assert data["current_index"] == 1
        assert data["total"] == 2
        assert data["jobs"][1]["date_offset_days"] == 7

        response = await client.delete("/api/batch")
        assert response.status_code == 200
        assert store.load() is None

        response = await client.delete("/api/batch")
        assert response.status_code == 404

    async def test_progress_before_any_run(self, client):
        response = await client.get("/api/progress")
        assert response.status_code == 200
        data = response.json()
        assert data["completed"] == 0
        assert data["finished"] is False

    async def test_logs_empty_before_any_run(self, client):
        response = await client.get("/api/logs")
        assert response.status_code == 200
        assert response.text == ""
