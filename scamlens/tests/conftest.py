import json

import httpx
import pytest
from fastapi.testclient import TestClient

from scamlens.api.server import create_app
from scamlens.config import Settings
from scamlens.services.content_fetcher import ContentFetcher
from scamlens.services.llm_client import LLMClient


# 1x1 transparent PNG
PNG_B64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
JPEG_B64 = "/9j/4AAQSkZJRgABAQEASABIAAD/2wBDAAMCAgICAgMCAgIDAwMDBAYEBAQEBAgGBgUGCQgKCgkICQkKDA8MCgsOCwkJDRENDg8QEBEQCgwSExIQEw8QEBD/"


class FakeLLMClient(LLMClient):
    """Records every call and answers with a canned reply (or raises)."""

    provider = "fake"

    def __init__(self, reply=None, error=None):
        super().__init__(model="fake-model")
        self.reply = reply
        self.error = error
        self.calls = []

    async def generate(self, prompt, images=()):
        self.calls.append({"prompt": prompt, "images": list(images)})
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def test_settings():
    return Settings(
        environment="test",
        openai_api_key="sk-test",
        llm_timeout_seconds=2.0,
        fetch_timeout_seconds=0.5,
    )


@pytest.fixture
def scam_verdict():
    return {
        "verdict": "SCAM",
        "confidence": 92,
        "reason": "Tin nhắn giả mạo ngân hàng yêu cầu mã OTP.",
        "red_flags": ["Yêu cầu mã OTP", "Tên miền giả mạo"],
        "advice": "Không cung cấp mã OTP cho bất kỳ ai.",
    }


@pytest.fixture
def fake_llm(scam_verdict):
    return FakeLLMClient(reply=json.dumps(scam_verdict, ensure_ascii=False))


def html_transport(html, status_code=200, content_type="text/html; charset=utf-8"):
    """httpx transport that serves the same page for every request and counts them."""
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(status_code, text=html, headers={"content-type": content_type})

    transport = httpx.MockTransport(handler)
    transport.seen = seen
    return transport


@pytest.fixture
def phishing_page():
    return """
    <html>
      <head>
        <title>Vietcombank</title>
        <script src="https://cdn.evil.example/steal.js"></script>
        <style>body { color: red; }</style>
      </head>
      <body>
        <h1>Xác minh tài khoản</h1>
        <p>Tài khoản của bạn   sẽ bị khóa
           trong 24 giờ.</p>
        <form action="/collect" method="post">
          <input name="username"><input name="password" type="password">
        </form>
        <script src="/js/app.js"></script>
        <script>var inline = "not visible";</script>
      </body>
    </html>
    """


@pytest.fixture
def make_client(test_settings):
    """Build a TestClient around an app with injected model client and fetcher."""
    clients = []

    def _make(llm_client, transport=None, app_settings=None):
        cfg = app_settings or test_settings
        fetcher = ContentFetcher(
            timeout=cfg.fetch_timeout_seconds,
            max_text_chars=cfg.fetch_max_text_chars,
            max_form_chars=cfg.fetch_max_form_chars,
            max_scripts=cfg.fetch_max_scripts,
            transport=transport or html_transport("<html><body>ok</body></html>"),
        )
        client = TestClient(create_app(app_settings=cfg, llm_client=llm_client, fetcher=fetcher))
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client, fake_llm):
    """FastAPI test client backed by a model that always says SCAM."""
    return make_client(fake_llm)


@pytest.fixture
def llm_factory():
    """Factory for FakeLLMClient instances with a given reply or error."""
    return FakeLLMClient


@pytest.fixture
def serve_html():
    """Factory for mock transports serving a fixed page."""
    return html_transport


@pytest.fixture
def png_data_url():
    return f"data:image/png;base64,{PNG_B64}"


@pytest.fixture
def jpeg_data_url():
    return f"data:image/jpeg;base64,{JPEG_B64}"
