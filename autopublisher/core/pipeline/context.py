"""
Collaborators shared by every pipeline stage.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from autopublisher.core.events import Event, EventBus
from autopublisher.core.gemini import GeminiClient
from autopublisher.core.mailer import BrevoMailer
from autopublisher.core.oauth import OAuthManager
from autopublisher.core.pipeline.topics import TOPIC_MODELS
from autopublisher.core.pipeline.trace import TraceState
from autopublisher.core.state import TraceStore, get_trace_store
from autopublisher.core.storage import StorageAdapter, get_storage
from autopublisher.core.youtube_client import YouTubeClient


@dataclass
class PipelineContext:
    """Context handed to stage handlers."""

    bus: EventBus
    store: TraceStore
    storage: StorageAdapter
    oauth: OAuthManager
    youtube: YouTubeClient
    mailer: BrevoMailer
    gemini: Optional[GeminiClient] = None

    def trace(self, trace_id: str) -> TraceState:
        return TraceState(self.store, trace_id)

    def get_gemini(self) -> GeminiClient:
        """Create the Gemini client on first use (fails without an API key)."""
        if self.gemini is None:
            self.gemini = GeminiClient()
        return self.gemini

    async def emit(self, topic: str, data: Dict[str, Any]) -> Event:
        return await self.bus.emit(topic, data)


def build_pipeline_context() -> PipelineContext:
    return PipelineContext(
        bus=EventBus(TOPIC_MODELS),
        store=get_trace_store(),
        storage=get_storage(),
        oauth=OAuthManager(),
        youtube=YouTubeClient(),
        mailer=BrevoMailer(),
    )
