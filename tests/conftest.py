"""
Shared fixtures: a pipeline context backed by in-memory state, local
storage under tmp_path, a mocked Brevo transport and fake AI/YouTube clients.
"""

import json
import threading
from typing import Any, Dict, List, Optional

import httpx
import pytest

from autopublisher.core.events import EventBus
from autopublisher.core.gemini import GeneratedImage
from autopublisher.core.mailer import BrevoMailer
from autopublisher.core.oauth import OAuthManager
from autopublisher.core.pipeline import PipelineContext
from autopublisher.core.pipeline.topics import TOPIC_MODELS
from autopublisher.core.repositories import InMemoryTokenRepository
from autopublisher.core.state import MemoryTraceStore
from autopublisher.core.storage import LocalStorageAdapter

PROMPTS_RESPONSE = {
    "title": "Baking Sourdough at Home",
    "description": "Everything you need for a crusty loaf.",
    "tags": ["sourdough", "baking"],
    "thumbnailPrompt": "A golden sourdough loaf on a wooden board",
    "thumbnailStyle": "warm and rustic",
    "thumbnailColors": ["#F5A623", "#FFFFFF"],
    "thumbnailTextOverlay": "EASY SOURDOUGH",
}

TITLES_RESPONSE = {
    "previousTitleAnalysis": {"strengths": ["clear"], "weaknesses": ["plain"], "seoScore": "6"},
    "titles": [
        {"title": "How To Bake Sourdough (Beginner Guide)", "style": "How To"},
        {"title": "5 Sourdough Secrets Bakers Won't Tell You", "style": "List"},
    ],
    "recommended": 1,
    "recommendedReason": "Numbers lift CTR",
}

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image-bytes"


class FakeGemini:
    """Stands in for GeminiClient; routes JSON requests by prompt content."""

    def __init__(
        self,
        prompts: Optional[Dict[str, Any]] = None,
        titles: Optional[Dict[str, Any]] = None,
        image: Optional[GeneratedImage] = GeneratedImage(PNG_BYTES, "image/png"),
        description: str = "Loaf in warm light, bold yellow text on the left",
    ):
        self.prompts = PROMPTS_RESPONSE if prompts is None else prompts
        self.titles = TITLES_RESPONSE if titles is None else titles
        self.image = image
        self.description = description
        self.json_calls: List[str] = []
        self.image_calls: List[str] = []

    def generate_json(self, prompt: str, system_instruction: Optional[str] = None, temperature: float = 0.8):
        self.json_calls.append(prompt)
        response = self.titles if "YouTube titles" in prompt else self.prompts
        if isinstance(response, Exception):
            raise response
        return json.loads(json.dumps(response))

    def generate_text(self, prompt: str) -> str:
        return self.description

    def generate_image(self, prompt: str) -> Optional[GeneratedImage]:
        self.image_calls.append(prompt)
        if isinstance(self.image, Exception):
            raise self.image
        return self.image


class FakeYouTube:
    """Records uploads instead of calling the YouTube Data API."""

    def __init__(self, video_id: str = "vid123", error: Optional[Exception] = None, thumbnail_error: Optional[Exception] = None):
        self.video_id = video_id
        self.error = error
        self.thumbnail_error = thumbnail_error
        self.uploads: List[Dict[str, Any]] = []
        self.thumbnails: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def upload_video(self, auth, stream, mimetype, title, description, tags, privacy):
        with self._lock:
            self.uploads.append(
                {
                    "email": auth.email,
                    "data": stream.read(),
                    "mimetype": mimetype,
                    "title": title,
                    "description": description,
                    "tags": tags,
                    "privacy": privacy,
                }
            )
        if self.error is not None:
            raise self.error
        return {
            "id": self.video_id,
            "snippet": {"channelId": "UC123", "channelTitle": "Bake Club", "publishedAt": "2024-01-01T00:00:00Z"},
        }

    def set_thumbnail(self, auth, video_id, stream, mimetype="image/jpeg"):
        if self.thumbnail_error is not None:
            raise self.thumbnail_error
        self.thumbnails.append({"video_id": video_id, "data": stream.read(), "mimetype": mimetype})


class BrevoRecorder:
    """httpx transport handler capturing Brevo API calls."""

    def __init__(self, status_code: int = 201, body: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self.body = body if body is not None else {"messageId": "<msg-1@brevo>"}
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)

    def payloads(self) -> List[Dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]


class EventRecorder:
    """Subscribes to topics and keeps every delivered event."""

    def __init__(self, bus: EventBus, *topics: str):
        self.events = []
        for topic in topics:
            bus.subscribe(topic, self._record, name=f"recorder:{topic}")

    async def _record(self, event) -> None:
        self.events.append(event)

    def topics(self) -> List[str]:
        return [event.topic for event in self.events]


@pytest.fixture
def gemini() -> FakeGemini:
    return FakeGemini()


@pytest.fixture
def youtube() -> FakeYouTube:
    return FakeYouTube()


@pytest.fixture
def brevo() -> BrevoRecorder:
    return BrevoRecorder()


@pytest.fixture
def storage(tmp_path) -> LocalStorageAdapter:
    return LocalStorageAdapter(tmp_path / "storage", "http://files.test")


@pytest.fixture
def token_repository() -> InMemoryTokenRepository:
    return InMemoryTokenRepository()


@pytest.fixture
def oauth(token_repository) -> OAuthManager:
    return OAuthManager(
        repository=token_repository,
        client_id="client-id.apps.googleusercontent.com",
        client_secret="client-secret",
        redirect_uri="http://localhost:3000/auth/callback",
    )


@pytest.fixture
def connected_user(oauth):
    return oauth.save_tokens_for_user(
        " Creator@Example.com ",
        {"access_token": "ya29.token", "refresh_token": "1//refresh", "token_type": "Bearer"},
    )


@pytest.fixture
def ctx(storage, oauth, gemini, youtube, brevo) -> PipelineContext:
    mailer = BrevoMailer(
        api_key="brevo-key",
        sender_email="pipeline@example.com",
        transport=httpx.MockTransport(brevo),
    )
    return PipelineContext(
        bus=EventBus(TOPIC_MODELS),
        store=MemoryTraceStore(),
        storage=storage,
        oauth=oauth,
        youtube=youtube,
        mailer=mailer,
        gemini=gemini,
    )


@pytest.fixture
def video_file(tmp_path):
    folder = tmp_path / "incoming"
    folder.mkdir()
    path = folder / "sourdough.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42" + b"0" * 2048)
    return path
