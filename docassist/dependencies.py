from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends

from .agents.profiles import AgentProfileStore, build_profile_store
from .agents.usage import AgentUsageSink, build_usage_sink
from .core.config import Settings, get_settings
from .core.logging import get_logger
from .orchestration.store import ConversationStateStore, build_state_store
from .orchestration.turns import TurnOrchestrator
from .services.assistant import AssistantClient, AssistantClientConfig
from .services.search import SearchClient
from .services.tracking import TrackingClient
from .tools.handlers import ToolHandlers
from .tools.registry import ToolRouter

logger = get_logger(name=__name__)


@dataclass(slots=True)
class ServiceContainer:
    """Long-lived clients and stores shared by every request."""

    assistant: AssistantClient
    store: ConversationStateStore
    profiles: AgentProfileStore
    usage: AgentUsageSink
    search: SearchClient
    tracking: TrackingClient
    orchestrator: TurnOrchestrator

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServiceContainer":
        assistant = AssistantClient(AssistantClientConfig.from_settings(settings))
        store = build_state_store(settings)
        profiles = build_profile_store(settings)
        usage = build_usage_sink(settings)
        search = SearchClient.from_settings(settings)
        tracking = TrackingClient.from_settings(settings)
        handlers = ToolHandlers(store=store, search=search, tracking=tracking, search_settings=settings.search)
        router = ToolRouter(handlers.table(), concurrent=settings.orchestration.dispatch_concurrently)
        orchestrator = TurnOrchestrator(
            assistant=assistant,
            store=store,
            profiles=profiles,
            router=router,
            usage=usage,
            settings=settings.orchestration,
        )
        return cls(
            assistant=assistant,
            store=store,
            profiles=profiles,
            usage=usage,
            search=search,
            tracking=tracking,
            orchestrator=orchestrator,
        )

    async def aclose(self) -> None:
        await self.assistant.aclose()
        await self.search.aclose()
        await self.tracking.aclose()
        await self.store.close()
        await self.profiles.close()
        await self.usage.close()


_services_singleton: ServiceContainer | None = None


def get_services_singleton(settings: Settings) -> ServiceContainer:
    global _services_singleton
    if _services_singleton is None:
        _services_singleton = ServiceContainer.from_settings(settings)
        logger.info("services_initialized", environment=settings.environment)
    return _services_singleton


async def shutdown_services() -> None:
    global _services_singleton
    if _services_singleton is not None:
        await _services_singleton.aclose()
        _services_singleton = None


def get_app_settings() -> Settings:
    return get_settings()


def get_services(settings: Settings = Depends(get_app_settings)) -> ServiceContainer:
    return get_services_singleton(settings)


def get_turn_orchestrator(services: ServiceContainer = Depends(get_services)) -> TurnOrchestrator:
    return services.orchestrator


def get_state_store(services: ServiceContainer = Depends(get_services)) -> ConversationStateStore:
    return services.store
