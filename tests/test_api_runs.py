import json
import unittest
from uuid import uuid4

from fastapi.testclient import TestClient

from voicepanel.core.dependencies import (
    get_progress_store, get_record_store, get_respondent, get_run_executor, get_run_supervisor,
)
from voicepanel.main import app
from voicepanel.models.run_model import RunStatus
from voicepanel.services.aggregation import ScoredResponse, local_themes, segment, summarize
from voicepanel.services.progress import InMemoryProgressStore, RunProgressState
from voicepanel.services.run_supervisor import RunSupervisor

from fakes import FakeRespondent, InMemoryRecordStore


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryRecordStore()
        self.progress = InMemoryProgressStore()
        self.supervisor = RunSupervisor()
        self.respondent = FakeRespondent()
        self.executed = []

        async def executor(run_id):
            self.executed.append(run_id)

        app.dependency_overrides[get_record_store] = lambda: self.store
        app.dependency_overrides[get_progress_store] = lambda: self.progress
        app.dependency_overrides[get_run_supervisor] = lambda: self.supervisor
        app.dependency_overrides[get_respondent] = lambda: self.respondent
        app.dependency_overrides[get_run_executor] = lambda: executor

        self.client = TestClient(app)
        self.client.__enter__()
        app.state.progress_store = self.progress

        self.persona = self.store.seed_persona(variant_count=7)

    def tearDown(self):
        self.client.__exit__(None, None, None)
        app.dependency_overrides.clear()

    def complete_run_with_responses(self):
        run = self.store.seed_run([self.persona.id], status=RunStatus.COMPLETE, responses_total=7)
        variants = self.store.list_variants(self.persona.id)
        for i, variant in enumerate(variants):
            self.store.seed_response(run, variant, sentiment=2 + i, tags=("excited",) if i > 3 else ("skeptical",))
        scored = [ScoredResponse.from_row(r) for r in self.store.list_responses(run.id)]
        self.store.save_aggregate(run.id, summarize(scored), segment(scored), local_themes(scored))
        return run


class TestRunEndpoints(ApiTestCase):
    def test_health(self):
        self.assertEqual(self.client.get("/health").json(), {"status": "healthy"})

    def test_create_run(self):
        resp = self.client.post("/api/v1/runs", json={
            "name": "Refill launch",
            "concept_text": "Refillable deodorant, playful launch",
            "persona_ids": [str(self.persona.id)],
            "variant_config": {"focus_modifier": "Think about price"},
        })
        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertEqual(body["status"], "draft")
        self.assertEqual(body["responses_total"], 0)
        self.assertEqual(body["variant_config"]["focus_modifier"], "Think about price")

        listed = self.client.get("/api/v1/runs").json()
        self.assertEqual([r["id"] for r in listed], [body["id"]])

    def test_create_run_with_unknown_persona(self):
        resp = self.client.post("/api/v1/runs", json={"name": "x", "concept_text": "c", "persona_ids": [str(uuid4())]})
        self.assertEqual(resp.status_code, 404)

    def test_image_attachment_requires_data_url(self):
        resp = self.client.post("/api/v1/runs", json={
            "name": "x", "concept_text": "c", "persona_ids": [str(self.persona.id)],
            "attachments": [{"name": "key.png", "mime_type": "image/png", "kind": "image"}],
        })
        self.assertEqual(resp.status_code, 422)

    def test_get_unknown_run(self):
        self.assertEqual(self.client.get(f"/api/v1/runs/{uuid4()}").status_code, 404)

    def test_start_run(self):
        run = self.store.seed_run([self.persona.id])

        resp = self.client.post(f"/api/v1/runs/{run.id}/start")

        self.assertEqual(resp.status_code, 202)
        body = resp.json()
        self.assertTrue(body["accepted"])
        self.assertEqual(body["total_variants"], 7)
        self.assertEqual(len(self.supervisor.jobs_for_run(run.id)), 1)
        self.assertEqual(self.client.get(f"/api/v1/runs/{run.id}/progress").json(),
                         {"completed": 0, "total": 7, "status": "running"})

        again = self.client.post(f"/api/v1/runs/{run.id}/start")
        self.assertEqual(again.status_code, 409)

    def test_start_without_concept(self):
        run = self.store.seed_run([self.persona.id], concept_text="")
        self.assertEqual(self.client.post(f"/api/v1/runs/{run.id}/start").status_code, 409)

    def test_progress_falls_back_to_stored_rows(self):
        run = self.store.seed_run([self.persona.id], status=RunStatus.FAILED, responses_total=7, responses_completed=3)
        for variant in self.store.list_variants(self.persona.id)[:4]:
            self.store.seed_response(run, variant)

        resp = self.client.get(f"/api/v1/runs/{run.id}/progress")

        self.assertEqual(resp.json(), {"completed": 4, "total": 7, "status": "failed"})

    def test_progress_for_unknown_run(self):
        self.assertEqual(self.client.get(f"/api/v1/runs/{uuid4()}/progress").status_code, 404)

    def test_results_conflict_until_complete(self):
        run = self.store.seed_run([self.persona.id], status=RunStatus.RUNNING)
        self.assertEqual(self.client.get(f"/api/v1/runs/{run.id}/results").status_code, 409)

    def test_results_are_stable(self):
        run = self.complete_run_with_responses()

        first = self.client.get(f"/api/v1/runs/{run.id}/results")
        second = self.client.get(f"/api/v1/runs/{run.id}/results")

        self.assertEqual(first.status_code, 200)
        body = first.json()
        self.assertEqual(body["summary"]["total_responses"], 7)
        self.assertEqual(body["themes"]["source"], "tags")
        self.assertIn(body["benchmark_label"], {"Excellent", "Strong", "Promising", "Needs Work", "Weak"})
        self.assertEqual(body["summary"], second.json()["summary"])
        self.assertEqual(body["segments"], second.json()["segments"])

    def test_live_summary(self):
        run = self.store.seed_run([self.persona.id], status=RunStatus.RUNNING, responses_total=7)
        for variant in self.store.list_variants(self.persona.id)[:3]:
            self.store.seed_response(run, variant, sentiment=8)

        body = self.client.get(f"/api/v1/runs/{run.id}/live").json()

        self.assertEqual(body["status"], "running")
        self.assertEqual(body["summary"]["total_responses"], 3)
        self.assertEqual(body["summary"]["sentiment"]["positive"], 3)
        self.assertGreater(body["benchmark_score"], 0)

    def test_list_responses_with_filters(self):
        run = self.complete_run_with_responses()

        everything = self.client.get(f"/api/v1/runs/{run.id}/responses").json()
        positive = self.client.get(f"/api/v1/runs/{run.id}/responses", params={"sentiment": "positive"}).json()
        page = self.client.get(f"/api/v1/runs/{run.id}/responses", params={"limit": 2, "offset": 1}).json()

        self.assertEqual(everything["total"], 7)
        self.assertTrue(all(r["sentiment_score"] >= 7 for r in positive["responses"]))
        self.assertEqual(positive["total"], 2)
        self.assertEqual(len(page["responses"]), 2)
        self.assertEqual(page["total"], 7)
        self.assertIsNotNone(everything["responses"][0]["variant_name"])

    def test_list_responses_rejects_unknown_filter(self):
        run = self.complete_run_with_responses()
        resp = self.client.get(f"/api/v1/runs/{run.id}/responses", params={"sentiment": "ecstatic"})
        self.assertEqual(resp.status_code, 422)

    def test_delete_run_clears_progress(self):
        run = self.store.seed_run([self.persona.id])
        self.progress.set(run.id, RunProgressState(2, 7, "running"))

        self.assertEqual(self.client.delete(f"/api/v1/runs/{run.id}").status_code, 204)
        self.assertIsNone(self.progress.get(run.id))
        self.assertEqual(self.client.get(f"/api/v1/runs/{run.id}").status_code, 404)
        self.assertEqual(self.client.delete(f"/api/v1/runs/{run.id}").status_code, 404)


class TestProgressWebsocket(ApiTestCase):
    def test_terminal_progress_is_sent_then_closed(self):
        run_id = uuid4()
        self.progress.set(run_id, RunProgressState(7, 7, "complete"))

        with self.client.websocket_connect(f"/api/v1/runs/{run_id}/progress/ws") as ws:
            self.assertEqual(ws.receive_json(), {"completed": 7, "total": 7, "status": "complete"})

    def test_missing_entry_closes(self):
        with self.client.websocket_connect(f"/api/v1/runs/{uuid4()}/progress/ws") as ws:
            self.assertIn("error", ws.receive_json())


class TestPersonaVariantEndpoints(ApiTestCase):
    def test_generate_replaces_variants(self):
        self.respondent.variant_reply = json.dumps({"variants": [
            {"variant_name": "Jess", "age_actual": 22, "primary_platform": "TikTok", "attitude_score": 9},
            {"variant_name": "Omar", "age_actual": 29, "primary_platform": "YouTube"},
        ]})

        resp = self.client.post(f"/api/v1/personas/{self.persona.id}/variants", json={"count": 5})

        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["variants_generated"], 2)
        listed = self.client.get(f"/api/v1/personas/{self.persona.id}/variants").json()
        self.assertEqual([v["variant_name"] for v in listed], ["Jess", "Omar"])
        self.assertEqual([v["variant_index"] for v in listed], [1, 2])

    def test_empty_generation_keeps_existing_variants(self):
        self.respondent.variant_reply = '{"foo": "bar"}'

        resp = self.client.post(f"/api/v1/personas/{self.persona.id}/variants", json={"count": 5})

        self.assertEqual(resp.status_code, 422)
        detail = resp.json()["detail"]
        self.assertEqual(detail["kind"], "empty")
        self.assertEqual(detail["debug"]["top_level_keys"], ["foo"])
        self.assertEqual(detail["debug"]["requested_count"], 5)
        self.assertEqual(len(self.store.list_variants(self.persona.id)), 7)

    def test_unavailable_generator(self):
        self.respondent.available = False
        resp = self.client.post(f"/api/v1/personas/{self.persona.id}/variants", json={"count": 5})
        self.assertEqual(resp.status_code, 503)
        self.assertEqual(resp.json()["detail"]["kind"], "unavailable")

    def test_unknown_persona(self):
        resp = self.client.get(f"/api/v1/personas/{uuid4()}/variants")
        self.assertEqual(resp.status_code, 404)


if __name__ == "__main__":
    unittest.main()
