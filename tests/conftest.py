import base64
import json
import random
from io import BytesIO

import httpx
import mongomock
import pytest
from fastapi.testclient import TestClient
from PIL import Image

import cropscan.main as main_mod
from cropscan.database import get_db
from cropscan.services import vision


VALID_RESULT = {
    "diseaseName": "Late Blight",
    "confidence": 87,
    "cropType": "Tomato",
    "severity": "Moderate",
    "symptoms": ["Dark brown spots on leaves", "White mold on undersides"],
    "treatment": "Apply copper-based fungicide and remove infected plants.",
    "prevention": ["Rotate crops yearly", "Water at soil level"],
}


def make_image_bytes(width=64, height=48, fmt="JPEG", mode="RGB", color=(40, 140, 60)):
    img = Image.new(mode, (width, height), color)
    buf = BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def make_photo_bytes(width=1400, height=1000, seed=7):
    """Noisy JPEG about the size of a phone photo; noise keeps it from compressing."""
    pixels = random.Random(seed).randbytes(width * height * 3)
    img = Image.frombytes("RGB", (width, height), pixels)
    buf = BytesIO()
    img.save(buf, format="JPEG", quality=95)
    return buf.getvalue()


def to_data_url(content, mime="image/jpeg"):
    return f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"


def chat_completion(content):
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
    }


class FakeUpstream:
    """Stands in for the inference service behind httpx.MockTransport."""

    def __init__(self):
        self.requests = []
        self.status_code = 200
        self.body = chat_completion(json.dumps(VALID_RESULT))
        self.exc = None

    def respond(self, status_code=200, body=None, content=None):
        self.status_code = status_code
        if content is not None:
            self.body = chat_completion(content)
        elif body is not None:
            self.body = body

    def fail_with(self, exc):
        self.exc = exc

    def handler(self, request):
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        if isinstance(self.body, (dict, list)):
            return httpx.Response(self.status_code, json=self.body)
        return httpx.Response(self.status_code, text=self.body)

    def client(self):
        return httpx.Client(transport=httpx.MockTransport(self.handler))

    @property
    def last_payload(self):
        return json.loads(self.requests[-1].content)


@pytest.fixture
def image_bytes():
    return make_image_bytes()


@pytest.fixture
def image_data_url(image_bytes):
    return to_data_url(image_bytes)


@pytest.fixture
def mongo_db():
    return mongomock.MongoClient()["cropscan_test"]


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def api(monkeypatch, mongo_db, upstream):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("JWT_SECRET", "test-secret")

    def analyze_with_fake_upstream(image_data_url):
        return vision.analyze_crop_image(image_data_url, client=upstream.client())

    monkeypatch.setattr(main_mod, "analyze_crop_image", analyze_with_fake_upstream)
    main_mod.app.dependency_overrides[get_db] = lambda: mongo_db
    client = TestClient(main_mod.app)
    yield client
    main_mod.app.dependency_overrides.clear()
