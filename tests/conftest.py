"""
Shared fixtures for the X-ray relay tests.
"""

import io
import os

# Must be set before app.config is imported
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["OPENAI_API_KEY"] = ""

import httpx
import pytest
from PIL import Image


class FakeUpstream:
    """
    Stand-in for the chat-completions API.

    Records every outbound request so tests can assert how many network
    calls the relay made.
    """

    def __init__(self, status_code=200, json_body=None, text=None, exc=None):
        self.status_code = status_code
        self.json_body = json_body
        self.text = text
        self.exc = exc
        self.requests = []

    @classmethod
    def completion(cls, content):
        return cls(json_body={
            "id": "chatcmpl-test",
            "object": "chat.completion",
            "choices": [
                {
                    "index": 0,
                    "message": {"role": "assistant", "content": content},
                    "finish_reason": "stop",
                }
            ],
        })

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        if self.text is not None:
            return httpx.Response(self.status_code, text=self.text)
        return httpx.Response(self.status_code, json=self.json_body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def call_count(self) -> int:
        return len(self.requests)


def make_image(fmt="PNG", size=(64, 64)) -> bytes:
    """Render a small grayscale image in the given format."""
    buffer = io.BytesIO()
    Image.new("L", size, color=128).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def png_bytes():
    return make_image("PNG")


@pytest.fixture
def jpeg_bytes():
    return make_image("JPEG")
