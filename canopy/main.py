"""Canopy FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from anthropic import AsyncAnthropic
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from canopy.config import Settings
from canopy.db.connection import Database
from canopy.events import EventLog, EventStore, StateProjector
from canopy.events.router import get_event_store
from canopy.events.router import router as events_router
from canopy.folders.router import get_folder_service
from canopy.folders.router import router as folders_router
from canopy.folders.service import FolderService
from canopy.forest.mutations import MutationEngine
from canopy.forest.resolver import TreeResolver
from canopy.forest.store import ForestStore
from canopy.generation.collaborator import ModelCollaborator
from canopy.generation.context import ContextAssembler
from canopy.generation.service import GenerationService
from canopy.nodes.router import get_generation_service, get_node_service
from canopy.nodes.router import graph_router
from canopy.nodes.router import router as nodes_router
from canopy.nodes.service import NodeService
from canopy.providers.anthropic import AnthropicProvider
from canopy.providers.gemini import GeminiProvider
from canopy.providers.openai import OpenAIProvider
from canopy.providers.registry import clear_providers, get_all_providers, register_provider

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


@dataclass
class Services:
    """Everything wired on top of one database connection."""

    forest: ForestStore
    resolver: TreeResolver
    store: EventStore
    projector: StateProjector
    event_log: EventLog
    mutations: MutationEngine
    assembler: ContextAssembler
    collaborator: ModelCollaborator
    nodes: NodeService
    folders: FolderService
    generation: GenerationService


def build_services(
    db: Database,
    settings: Settings,
    *,
    collaborator: ModelCollaborator | None = None,
) -> Services:
    """Wire store, projector, resolver, and services. The resolver cache follows every projected event."""
    forest = ForestStore(db)
    resolver = TreeResolver(forest)
    projector = StateProjector(forest)
    projector.on_projected(resolver.handle_event)
    store = EventStore(db)
    event_log = EventLog(db, store, projector)

    mutations = MutationEngine(db, forest, resolver, event_log)
    assembler = ContextAssembler(forest, resolver, recent_turns=settings.recent_turns)
    if collaborator is None:
        collaborator = ModelCollaborator(
            default_provider=settings.default_provider,
            default_model=settings.default_model,
            summary_provider=settings.summary_provider,
            summary_model=settings.summary_model,
        )

    return Services(
        forest=forest,
        resolver=resolver,
        store=store,
        projector=projector,
        event_log=event_log,
        mutations=mutations,
        assembler=assembler,
        collaborator=collaborator,
        nodes=NodeService(forest, resolver, mutations, assembler, store),
        folders=FolderService(db, forest, mutations, event_log),
        generation=GenerationService(db, forest, assembler, collaborator, event_log),
    )


def register_providers_from_settings(settings: Settings) -> None:
    """Register a provider for every API key that is set."""
    if settings.anthropic_api_key:
        register_provider(AnthropicProvider(AsyncAnthropic(api_key=settings.anthropic_api_key)))

    if settings.openai_api_key:
        register_provider(OpenAIProvider(api_key=settings.openai_api_key))

    if settings.gemini_api_key:
        register_provider(GeminiProvider(api_key=settings.gemini_api_key))

    if not get_all_providers():
        logger.warning("No LLM provider API keys set; node creation will fail")


settings = Settings.from_env()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage database lifecycle and service wiring."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db = await Database.connect(settings.db_path)
    register_providers_from_settings(settings)

    services = build_services(db, settings)
    app.dependency_overrides[get_node_service] = lambda: services.nodes
    app.dependency_overrides[get_generation_service] = lambda: services.generation
    app.dependency_overrides[get_folder_service] = lambda: services.folders
    app.dependency_overrides[get_event_store] = lambda: services.store

    app.state.db = db
    app.state.services = services
    logger.info("Canopy started (db=%s)", settings.db_path)
    yield

    # Let in-flight generations persist before the connection closes
    await services.generation.wait_idle()
    clear_providers()
    await db.close()


app = FastAPI(
    title="Canopy",
    description="Branching conversations with language models, organized as a forest",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(nodes_router)
app.include_router(graph_router)
app.include_router(folders_router)
app.include_router(events_router)


@app.get("/api/health")
async def health() -> dict:
    return {"status": "ok", "version": VERSION}


@app.get("/api/providers")
async def providers() -> list[dict]:
    """Registered providers with the models their APIs list.

    A provider whose listing fails is reported unavailable with its suggested models.
    """
    listing = []
    for provider in get_all_providers():
        try:
            models = await provider.list_models()
            available = True
        except Exception as e:
            logger.warning("Listing models for %s failed: %s", provider.name, e)
            models, available = [], False
        listing.append(
            {
                "name": provider.name,
                "available": available,
                "models": models or list(provider.suggested_models),
            }
        )
    return listing
