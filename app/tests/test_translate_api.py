import unittest
from fastapi.testclient import TestClient

from app.core.dispatch_queue import DispatchQueue
from app.core.errors import QueueFullError, UpstreamRateLimited
from app.main import app
from app.tests.fakes import FakeClaude
from app.translate.service import Translator


def install(client, claude, *, api_key="test-key", queue=None):
    """Swap in a fake Claude and a fresh queue; the lifespan closes the new queue on exit."""
    state = client.app.state
    client.portal.call(state.queue.close)
    state.settings = state.settings.model_copy(update={"CLAUDE_API_KEY": api_key})
    state.queue = queue or DispatchQueue(dispatch_delay_s=0)
    state.translator = Translator(claude, state.queue)


class TestTranslateApi(unittest.TestCase):
    def test_translates_plain_text(self):
        with TestClient(app) as client:
            claude = FakeClaude(text="Hei maailma\n")
            install(client, claude)

            r = client.post("/translate", content="Hello world", headers={"Content-Type": "text/plain"})

            self.assertEqual(r.status_code, 200)
            self.assertEqual(r.text, "Hei maailma")
            self.assertTrue(r.headers["content-type"].startswith("text/plain"))
            self.assertEqual(len(claude.prompts), 1)

    def test_empty_body_returned_as_is(self):
        with TestClient(app) as client:
            claude = FakeClaude()
            install(client, claude)

            r = client.post("/translate", content="   ")

            self.assertEqual(r.status_code, 200)
            self.assertEqual(r.text, "   ")
            self.assertEqual(claude.prompts, [])

    def test_missing_api_key_passes_text_through(self):
        with TestClient(app) as client:
            claude = FakeClaude()
            install(client, claude, api_key=None)

            r = client.post("/translate", content="Hello")

            self.assertEqual(r.status_code, 200)
            self.assertEqual(r.text, "Hello")
            self.assertEqual(claude.prompts, [])

    def test_upstream_failure_falls_back_to_original(self):
        with TestClient(app) as client:
            install(client, FakeClaude(fail=UpstreamRateLimited(detail="slow down")))

            r = client.post("/translate", content="Keep me")

            self.assertEqual(r.status_code, 200)
            self.assertEqual(r.text, "Keep me")

    def test_unexpected_failure_falls_back_to_original(self):
        with TestClient(app) as client:
            install(client, FakeClaude(fail=KeyError("content")))

            r = client.post("/translate", content="Keep me too")

            self.assertEqual(r.status_code, 200)
            self.assertEqual(r.text, "Keep me too")

    def test_queue_full_falls_back_to_original(self):
        class FullQueue(DispatchQueue):
            def enqueue(self, operation):
                raise QueueFullError(detail="full")

        with TestClient(app) as client:
            install(client, FakeClaude(), queue=FullQueue())

            r = client.post("/translate", content="Busy")

            self.assertEqual(r.status_code, 200)
            self.assertEqual(r.text, "Busy")

    def test_queue_status(self):
        with TestClient(app) as client:
            install(client, FakeClaude())
            client.post("/translate", content="Hello")

            r = client.get("/queue/status")

            self.assertEqual(r.status_code, 200)
            data = r.json()
            self.assertEqual(set(data), {"queueLength", "recentRequests", "maxPerMinute", "processing"})
            self.assertEqual(data["queueLength"], 0)
            self.assertEqual(data["recentRequests"], 1)
            self.assertEqual(data["maxPerMinute"], 4)

    def test_invalid_utf8_passthrough_returns_original_bytes(self):
        body = b"caf\xe9 latin-1"
        with TestClient(app) as client:
            install(client, FakeClaude(), api_key=None)

            r = client.post("/translate", content=body)

            self.assertEqual(r.status_code, 200)
            self.assertEqual(r.content, body)

    def test_invalid_utf8_fallback_returns_original_bytes(self):
        body = b"na\xefve \xff text"
        with TestClient(app) as client:
            install(client, FakeClaude(fail=UpstreamRateLimited(detail="slow down")))

            r = client.post("/translate", content=body)

            self.assertEqual(r.status_code, 200)
            self.assertEqual(r.content, body)

    def test_swapped_queue_is_closed_on_shutdown(self):
        with TestClient(app) as client:
            original = client.app.state.queue
            install(client, FakeClaude())
            swapped = client.app.state.queue

        self.assertTrue(original._closed)
        self.assertTrue(swapped._closed)
