import json
import unittest
from unittest.mock import patch

import httpx

from ainotebook.core.config import settings
from ainotebook.core.errors import ModelResponseError, PreconditionError
from ainotebook.core.models import Source, SourceContent
from ainotebook.adapters.llm.gemini import GeminiLLM, to_gemini_schema
from ainotebook.services.query_service import (
    EMPTY_ANSWER,
    NO_SOURCES,
    RESPONSE_SCHEMA,
    build_prompt_parts,
    parse_answer,
    query_sources,
)

from fakes import FakeLLM


def _text_source(id_, title, data):
    return Source(id=id_, title=title, content=SourceContent(mime_type="text/plain", data=data))


class TestPromptParts(unittest.TestCase):
    def test_instruction_then_sources_then_question(self):
        sources = [_text_source("S1", "Doc A", "alpha text"), _text_source("S2", "Doc B", "beta text")]
        parts = build_prompt_parts("What is alpha?", sources, language="English")

        self.assertIn("*only*", parts[0].text)
        self.assertIn("You MUST answer in English", parts[0].text)
        self.assertIn("ID: S1\nTITLE: Doc A\nCONTENT:\nalpha text\n--- SOURCE END ---", parts[1].text)
        self.assertIn("ID: S2", parts[2].text)
        self.assertEqual(parts[-1].text, '\n\nUser question: "What is alpha?"')
        self.assertFalse(any(p.is_inline for p in parts))

    def test_image_source_becomes_an_inline_part(self):
        img = Source(id="I1", title="Chart", content=SourceContent(mime_type="image/png", data="iVBORw0KGgo="))
        parts = build_prompt_parts("q", [img])
        self.assertIn("[The content of this source is the following image]", parts[1].text)
        self.assertTrue(parts[2].is_inline)
        self.assertEqual((parts[2].mime_type, parts[2].data), ("image/png", "iVBORw0KGgo="))
        self.assertEqual(parts[3].text, "\n--- SOURCE END ---")


class TestParseAnswer(unittest.TestCase):
    def test_accepts_camel_case_ids_and_code_fences(self):
        raw = '```json\n{"answer": "Yes.", "citations": [{"sourceId": "S1", "quote": "q"}]}\n```'
        result = parse_answer(raw)
        self.assertEqual(result.answer, "Yes.")
        self.assertEqual(result.citations[0].source_id, "S1")

    def test_blank_answer_gets_placeholder_and_missing_citations_default_empty(self):
        result = parse_answer('{"answer": "  "}')
        self.assertEqual(result.answer, EMPTY_ANSWER)
        self.assertEqual(result.citations, [])

    def test_malformed_replies_raise(self):
        for raw in ("not json", "[]", '{"citations": []}', '{"answer": "a", "citations": {}}',
                    '{"answer": "a", "citations": [{"quote": "q"}]}'):
            with self.subTest(raw=raw), self.assertRaises(ValueError):
                parse_answer(raw)


class TestQuerySources(unittest.IsolatedAsyncioTestCase):
    async def test_empty_sources_fail_without_calling_the_model(self):
        llm = FakeLLM()
        with self.assertRaises(PreconditionError) as ctx:
            await query_sources("anything", [], llm)
        self.assertEqual(ctx.exception.diagnostic, NO_SOURCES)
        self.assertEqual(llm.calls, [])

    async def test_single_call_with_schema(self):
        llm = FakeLLM({"answer": "Alpha is first.", "citations": [{"source_id": "S1", "quote": "alpha text"}]})
        result = await query_sources("What is alpha?", [_text_source("S1", "Doc A", "alpha text")], llm)
        self.assertEqual(len(llm.calls), 1)
        self.assertIs(llm.calls[0][1], RESPONSE_SCHEMA)
        self.assertEqual(result.citations[0].quote, "alpha text")

    async def test_transport_and_parse_errors_become_one_diagnostic(self):
        sources = [_text_source("S1", "Doc A", "alpha")]
        for llm in (FakeLLM(error=httpx.ConnectError("down")), FakeLLM("{broken")):
            with self.subTest(llm=llm), self.assertRaises(ModelResponseError):
                await query_sources("q", sources, llm)
            self.assertEqual(len(llm.calls), 1)


class TestGeminiAdapter(unittest.IsolatedAsyncioTestCase):
    def test_schema_is_converted_to_openapi_subset(self):
        converted = to_gemini_schema(RESPONSE_SCHEMA)
        self.assertEqual(converted["type"], "OBJECT")
        self.assertNotIn("additionalProperties", converted)
        item = converted["properties"]["citations"]["items"]
        self.assertEqual(item["properties"]["source_id"]["type"], "STRING")
        self.assertEqual(item["required"], ["source_id", "quote"])

    async def test_generate_content_request_and_reply(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("x-goog-api-key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "candidates": [{"content": {"parts": [{"text": '{"answer": "hi",'}, {"text": ' "citations": []}'}]}}],
            })

        real_client = httpx.AsyncClient

        def client_factory(*args, **kwargs):
            kwargs["transport"] = httpx.MockTransport(handler)
            return real_client(*args, **kwargs)

        sources = [_text_source("S1", "Doc A", "alpha")]
        with patch.object(settings, "GEMINI_API_KEY", "test-key"), \
                patch("ainotebook.adapters.llm.gemini.httpx.AsyncClient", side_effect=client_factory):
            result = await query_sources("q", sources, GeminiLLM())

        self.assertEqual(result.answer, "hi")
        self.assertTrue(seen["url"].endswith(f"/models/{settings.GEMINI_MODEL}:generateContent"))
        self.assertEqual(seen["key"], "test-key")
        config = seen["body"]["generationConfig"]
        self.assertEqual(config["responseMimeType"], "application/json")
        self.assertEqual(config["temperature"], settings.LLM_TEMPERATURE)
        self.assertIn("ID: S1", seen["body"]["contents"][0]["parts"][1]["text"])

    async def test_missing_key_is_a_model_failure(self):
        with patch.object(settings, "GEMINI_API_KEY", None):
            with self.assertRaises(ModelResponseError):
                await query_sources("q", [_text_source("S1", "A", "a")], GeminiLLM())


if __name__ == "__main__":
    unittest.main()
