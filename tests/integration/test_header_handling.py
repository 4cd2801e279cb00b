"""Integration tests for header hygiene through the full gateway.

Covers:
  - host and content-length never copied from the inbound request; httpx
    derives them from the backend URL and the body actually sent
  - every other inbound header reaches the backend unchanged
  - transfer-encoding never relayed to the client
  - content-length recomputed when the gateway rewrites (redacts) a body
  - gateway-built responses carry a ULID X-MoltGuard-Request-ID
"""

from __future__ import annotations

import json
import re

import httpx

from moltguard.constants import REQUEST_ID_HEADER

ULID_PATTERN = re.compile(r"^[0-9A-HJKMNP-TV-Z]{26}$")

CHAT_REPLY = {
    "model": "llama3",
    "message": {"role": "assistant", "content": "reach me at bob@example.com"},
    "done": True,
}


class TestRequestHeaders:
    def test_host_from_backend_url(self, backend, gateway) -> None:
        backend.on("GET", "/api/tags", httpx.Response(200, content=b"{}"))
        with gateway() as client:
            client.get("/api/tags")
        assert backend.requests[0].headers["host"] == "localhost:11434"

    def test_content_length_matches_rewritten_body(self, backend, gateway) -> None:
        backend.on_json("POST", "/api/chat", CHAT_REPLY)
        # Extra whitespace: the re-serialized body is shorter than what was sent
        raw = b'{ "model" : "llama3" ,  "messages" : [ {"role": "user", "content": "Hi"} ] }'
        with gateway() as client:
            client.post("/api/chat", content=raw, headers={"content-type": "application/json"})

        forwarded = backend.requests[0]
        assert len(forwarded.content) < len(raw)
        assert int(forwarded.headers["content-length"]) == len(forwarded.content)

    def test_other_headers_forwarded(self, backend, gateway) -> None:
        backend.on("POST", "/api/embed", httpx.Response(200, content=b"{}"))
        with gateway() as client:
            client.post(
                "/api/embed",
                json={"model": "llama3", "input": "hi"},
                headers={
                    "Authorization": "Bearer sk-test",
                    "X-Client-Trace": "trace-123",
                    "User-Agent": "agent/1.0",
                },
            )

        forwarded = backend.requests[0].headers
        assert forwarded["authorization"] == "Bearer sk-test"
        assert forwarded["x-client-trace"] == "trace-123"
        assert forwarded["user-agent"] == "agent/1.0"

    def test_openai_surface_sends_json(self, backend, gateway) -> None:
        backend.on_json("POST", "/api/chat", CHAT_REPLY)
        with gateway() as client:
            client.post(
                "/v1/chat/completions",
                json={"model": "llama3", "messages": [{"role": "user", "content": "Hi"}]},
            )
        sent = backend.requests[0]
        assert sent.headers["content-type"] == "application/json"
        assert json.loads(sent.content)["stream"] is False


class TestResponseHeaders:
    def test_transfer_encoding_stripped(self, backend, gateway) -> None:
        backend.on(
            "GET",
            "/api/ps",
            httpx.Response(
                200,
                content=b'{"models":[]}',
                headers={"transfer-encoding": "chunked", "x-backend": "ollama"},
            ),
        )
        with gateway() as client:
            response = client.get("/api/ps")

        assert "transfer-encoding" not in response.headers
        assert response.headers["x-backend"] == "ollama"
        assert response.content == b'{"models":[]}'

    def test_content_length_recomputed_after_redaction(self, backend, gateway) -> None:
        backend.on_json("POST", "/api/chat", CHAT_REPLY, headers={"x-backend": "ollama"})
        with gateway() as client:
            response = client.post(
                "/api/chat",
                json={"model": "llama3", "messages": [{"role": "user", "content": "Hi"}]},
            )

        assert response.json()["message"]["content"] == "reach me at [PII_REDACTED]"
        assert response.headers["content-length"] == str(len(response.content))
        assert response.headers["x-backend"] == "ollama"

    def test_request_id_on_gateway_responses(self, backend, gateway) -> None:
        backend.on_json("POST", "/api/chat", CHAT_REPLY)
        with gateway() as client:
            first = client.post(
                "/v1/chat/completions",
                json={"model": "llama3", "messages": [{"role": "user", "content": "Hi"}]},
            )
            second = client.post(
                "/v1/chat/completions",
                json={"model": "llama3", "messages": [{"role": "user", "content": "Hi"}]},
            )

        assert ULID_PATTERN.match(first.headers[REQUEST_ID_HEADER])
        assert first.headers[REQUEST_ID_HEADER] != second.headers[REQUEST_ID_HEADER]


class TestRepeatedHeaders:
    def test_repeated_request_header_reaches_backend(self, backend, gateway) -> None:
        backend.on_json("POST", "/api/generate", {"model": "llama3", "response": "", "done": True})
        with gateway() as client:
            client.post(
                "/api/generate",
                json={"model": "llama3", "prompt": "Hi"},
                headers=[("X-Trace", "a"), ("X-Trace", "b")],
            )
        assert backend.requests[0].headers.get_list("x-trace") == ["a", "b"]

    def test_set_cookies_relayed_separately(self, backend, gateway) -> None:
        cookies = [("set-cookie", "a=1; Path=/"), ("set-cookie", "b=2; Path=/")]
        backend.on("GET", "/api/version", httpx.Response(200, content=b"{}", headers=cookies))
        backend.on("POST", "/api/chat", httpx.Response(200, json=CHAT_REPLY, headers=cookies))
        with gateway() as client:
            relayed = client.get("/api/version")
            redacted = client.post(
                "/api/chat",
                json={"model": "llama3", "messages": [{"role": "user", "content": "Hi"}]},
            )

        for response in (relayed, redacted):
            assert response.headers.get_list("set-cookie") == ["a=1; Path=/", "b=2; Path=/"]


class TestAcceptEncoding:
    def test_not_forwarded_when_reply_is_rewritten(self, backend, gateway) -> None:
        backend.on_json("POST", "/api/chat", CHAT_REPLY)
        with gateway() as client:
            client.post(
                "/api/chat",
                json={"model": "llama3", "messages": [{"role": "user", "content": "Hi"}]},
                headers={"Accept-Encoding": "compress"},
            )
        assert "compress" not in backend.requests[0].headers.get("accept-encoding", "")

    def test_forwarded_on_opaque_relay(self, backend, gateway) -> None:
        backend.on("GET", "/api/tags", httpx.Response(200, content=b"{}"))
        with gateway() as client:
            client.get("/api/tags", headers={"Accept-Encoding": "compress"})
        assert backend.requests[0].headers["accept-encoding"] == "compress"
