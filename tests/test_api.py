import os
import tempfile
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from ainotebook.api import routes_sources
from ainotebook.core.config import settings
from ainotebook.main import create_app
from ainotebook.services import ingest_service
from ainotebook.services.notebook_service import NotebookService
from ainotebook.services.store_service import NotebookStore

from fakes import FakeLLM, FakeOCR, FakePdf


def _events(body: str) -> list[tuple[str, str]]:
    out = []
    for block in body.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines() if ": " in line)
        out.append((lines.get("event"), lines.get("data")))
    return out


class TestApi(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = NotebookStore(os.path.join(self._tmp.name, "notebook.sqlite3")).load()
        self.llm = FakeLLM()
        self.notebook = NotebookService(self.store, llm=self.llm)
        self.client = TestClient(create_app(self.notebook))

    def tearDown(self):
        self._tmp.cleanup()

    def _upload_text(self, name="notes.txt", body=b"Some grounding text.", title=None):
        data = {"title": title} if title else None
        return self.client.post("/sources/upload", files={"file": (name, body, "text/plain")}, data=data)

    def test_upload_list_and_delete_source(self):
        r = self._upload_text(title="My notes")
        self.assertEqual(r.status_code, 200, r.text)
        source = r.json()
        self.assertEqual(source["title"], "My notes")
        self.assertEqual(source["file_name"], "notes.txt")
        self.assertEqual(source["content"], {"mime_type": "text/plain", "data": "Some grounding text."})

        listing = self.client.get("/sources").json()
        self.assertEqual([s["id"] for s in listing], [source["id"]])
        self.assertNotIn("content", listing[0])

        self.assertEqual(self.client.delete(f"/sources/{source['id']}").status_code, 200)
        self.assertEqual(self.client.delete(f"/sources/{source['id']}").status_code, 404)

    def test_oversized_upload_creates_no_source(self):
        with patch.object(settings, "MAX_UPLOAD_BYTES", 16):
            r = self._upload_text(body=b"x" * 16)
        self.assertEqual(r.status_code, 413)
        self.assertIn("too large", r.json()["detail"]["error"])
        self.assertEqual(self.client.get("/sources").json(), [])

        # A failed upload does not block the next one.
        self.assertEqual(self._upload_text().status_code, 200)

    def test_upload_body_is_read_only_up_to_the_limit(self):
        seen = []

        async def recording_ingest(data, *args, **kwargs):
            seen.append(len(data))
            return await ingest_service.ingest_upload(data, *args, **kwargs)

        with patch.object(settings, "MAX_UPLOAD_BYTES", 16), \
                patch.object(routes_sources, "ingest_upload", recording_ingest):
            r = self._upload_text(body=b"x" * 1000)
        self.assertEqual(r.status_code, 413)
        self.assertEqual(seen, [16])
        self.assertEqual(self.store.sources, [])

    def test_extract_does_not_store(self):
        r = self.client.post("/sources/extract", files={"file": ("a.md", b"# Title\nbody", "text/markdown")})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["content"]["data"], "# Title\nbody")
        self.assertEqual(self.store.sources, [])

    def test_pasted_source_validation(self):
        r = self.client.post("/sources", json={"title": " ", "content": "text"})
        self.assertEqual(r.status_code, 400)
        r = self.client.post("/sources", json={"title": "Pasted", "content": "text"})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(self.client.get(f"/sources/{r.json()['id']}").json()["content"]["data"], "text")

    def test_parse_failure_maps_to_422(self):
        r = self.client.post("/sources/upload", files={"file": ("x.pdf", b"nope", "application/pdf")})
        self.assertEqual(r.status_code, 422)
        self.assertIn("PDF parse failed", r.json()["detail"]["error"])

    def test_limits(self):
        body = self.client.get("/sources/limits").json()
        self.assertIn(".docx", body["accepted_extensions"])
        self.assertEqual(body["max_upload_bytes"], settings.MAX_UPLOAD_BYTES)

    def test_chat_and_notes_flow(self):
        self.assertEqual(self.client.post("/chat", json={"question": "hi"}).status_code, 400)
        self.assertEqual(self.llm.calls, [])

        source_id = self._upload_text().json()["id"]
        self.llm.reply = {"answer": "Grounded.", "citations": [{"source_id": source_id, "quote": "Some"}]}
        r = self.client.post("/chat", json={"question": "What is here?"})
        self.assertEqual(r.status_code, 200, r.text)
        reply = r.json()
        self.assertEqual(reply["citations"][0]["source_title"], "notes.txt")

        log = self.client.get("/chat").json()
        self.assertEqual([m["role"] for m in log["messages"]], ["user", "model"])
        self.assertFalse(log["busy"])

        n1 = self.client.post("/notes", json={"message_id": reply["id"]}).json()
        n2 = self.client.post("/notes", json={"message_id": reply["id"]}).json()
        self.assertEqual(n1["id"], n2["id"])
        self.assertEqual(len(self.client.get("/notes").json()), 1)

        self.assertEqual(self.client.delete("/chat").status_code, 200)
        self.assertEqual(self.client.get("/chat").json()["messages"], [])
        self.assertEqual(len(self.client.get("/notes").json()), 1)

        self.assertEqual(self.client.delete(f"/notes/{n1['id']}").status_code, 200)
        self.assertEqual(self.client.get("/notes").json(), [])

    def test_model_failure_is_502_and_keeps_question(self):
        self._upload_text()
        self.llm.reply = "garbage"
        r = self.client.post("/chat", json={"question": "Why?"})
        self.assertEqual(r.status_code, 502)
        self.assertIn("error", r.json()["detail"])
        messages = self.client.get("/chat").json()["messages"]
        self.assertEqual([(m["role"], m["text"]) for m in messages], [("user", "Why?")])

    def test_streamed_upload_reports_ocr_progress(self):
        pdf = FakePdf(["", ""])
        ocr = FakeOCR(["scanned one", "scanned two"])
        with patch.object(ingest_service, "open_pdf", return_value=pdf), \
                patch.object(ingest_service, "get_ocr_engine", return_value=ocr):
            r = self.client.post(
                "/sources/upload/stream",
                files={"file": ("scan.pdf", b"%PDF-1.4", "application/pdf")},
            )
        self.assertEqual(r.status_code, 200)
        events = _events(r.text)
        statuses = [data for name, data in events if name == "status"]
        self.assertTrue(any("OCR page 2 of 2" in s for s in statuses))
        self.assertEqual(events[-1], ("done", "[DONE]"))
        self.assertEqual(events[-2][0], "source")
        self.assertEqual(self.store.sources[0].content.data, "scanned one\n\nscanned two")

    def test_streamed_upload_reports_errors(self):
        with patch.object(settings, "MAX_UPLOAD_BYTES", 4):
            r = self.client.post("/sources/upload/stream", files={"file": ("a.txt", b"too long", "text/plain")})
        events = _events(r.text)
        self.assertEqual(events[-2][0], "error")
        self.assertIn("too large", events[-2][1])
        self.assertEqual(self.store.sources, [])


if __name__ == "__main__":
    unittest.main()
