"""
Dionysus Server

FastAPI facade over the core services.

Endpoints:
- GET /health: Health check
- POST/GET /projects, GET/DELETE /projects/{id}: Projects
- POST /projects/{id}/sync, GET /jobs/{job_id}: Repository sync jobs
- GET /projects/{id}/commits: Recent commits with summaries
- POST /projects/{id}/index: Index a checked-out repository
- POST/GET /projects/{id}/questions: Grounded Q&A
- POST /projects/{id}/meetings, POST /projects/{id}/meetings/upload,
  GET /projects/{id}/meetings, GET /meetings/{id}: Meetings
- POST /users/sync: Mirror an identity-provider user
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from .. import __version__
from ..common.config import DionysusConfig, ensure_directories, load_config
from ..common.embedding_service import EmbeddingService
from ..common.errors import (
    DionysusError,
    GenerationError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    SyncError,
)
from ..common.llm_client import LLMClient
from ..common.retry import RetryExecutor
from ..common.schemas.models import Commit, Identity, Meeting, Project, Question, SyncJob, User
from ..common.store import Store
from ..jobs.meetings import MeetingProcessor
from ..jobs.poller import JobPoller
from ..jobs.repository_sync import RepositorySyncRunner
from ..jobs.state_machine import JobStateMachine
from ..jobs.storage import LocalObjectStorage
from ..jobs.transcriber import OpenAITranscriber
from ..projects import ProjectService
from ..retriever.index import RetrievalIndex
from ..retriever.orchestrator import QuestionAnswerer
from ..sync.commit_sync import CommitSyncEngine
from ..sync.history_provider import GitHubHistoryProvider
from ..sync.summarizer import Summarizer

logger = logging.getLogger("dionysus.api.server")


# =============================================================================
# Service wiring
# =============================================================================

@dataclass
class Services:
    store: Store
    projects: ProjectService
    sync_engine: CommitSyncEngine
    repository_sync: RepositorySyncRunner
    index: RetrievalIndex
    answerer: QuestionAnswerer
    meetings: MeetingProcessor
    llm: Optional[LLMClient] = None


def build_services(config: DionysusConfig) -> Services:
    """Construct every component from configuration (the store is not opened)."""
    store = Store(config.database.url, echo=config.database.echo)
    executor = RetryExecutor(
        max_retries=config.retry.max_retries,
        delay_seconds=config.retry.delay_seconds,
    )
    llm = LLMClient.from_config(config.llm)
    summarizer = Summarizer(llm, timeout=config.llm.timeout)
    embedding = EmbeddingService(
        mode=config.embedding.mode,
        model=config.embedding.model,
        google_api_key=config.llm.google_api_key or None,
    )
    provider = GitHubHistoryProvider(
        api_url=config.github.api_url,
        default_token=config.github.token or None,
        timeout=config.github.timeout,
    )
    sync_engine = CommitSyncEngine(
        store,
        provider,
        executor,
        summarizer=summarizer,
        commit_limit=config.github.commit_limit,
    )
    state_machine = JobStateMachine(store)
    index = RetrievalIndex(
        store,
        embedding,
        summarizer,
        excerpt_chars=config.retriever.excerpt_chars,
        topk=config.retriever.topk,
        max_file_bytes=config.retriever.max_file_bytes,
        repos_dir=config.retriever.repos_dir,
    )
    storage =LocalObjectStorage(config.meetings.uploads_dir)
    transcriber = OpenAITranscriber(
        config.llm.openai_api_key or None,
        model=config.meetings.transcription_model,
        storage=storage,
    )
    poller = JobPoller(
        max_retries=config.meetings.poll_retries,
        initial_delay=config.meetings.poll_initial_delay,
    )
    return Services(
        store=store,
        projects=ProjectService(store, executor),
        sync_engine=sync_engine,
        repository_sync=RepositorySyncRunner(store, sync_engine, state_machine),
        index=index,
        answerer=QuestionAnswerer(
            store,
            index,
            llm,
            executor,
            topk=config.retriever.topk,
            timeout=config.llm.timeout,
        ),
        meetings=MeetingProcessor(store, storage, transcriber, summarizer, state_machine, poller, executor),
        llm=llm,
    )


# =============================================================================
# Request/Response Models
# =============================================================================

class CreateProjectRequest(BaseModel):
    name: str
    repo_url: Optional[str] = None
    credential: Optional[str] = None


class ProjectResponse(BaseModel):
    id: str
    name: str
    repo_url: Optional[str] = None
    has_credential: bool = False

    @classmethod
    def from_project(cls, project: Project) -> "ProjectResponse":
        return cls(
            id=project.id,
            name=project.name,
            repo_url=project.repo_url,
            has_credential=bool(project.credential),
        )


class AskRequest(BaseModel):
    question: str
    user_id: str


class IndexRequest(BaseModel):
    root: str


class CreateMeetingRequest(BaseModel):
    name: str
    audio_url: str


# Checked in order; subclasses before their bases
_ERROR_STATUS = (
    (InvalidInputError, 400),
    (NotFoundError, 404),
    (InvalidTransitionError, 409),
    (SyncError, 502),
    (GenerationError, 502),
)


def _status_for(error: DionysusError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 500


# =============================================================================
# App factory
# =============================================================================

def create_app(config: Optional[DionysusConfig] = None, services: Optional[Services] = None) -> FastAPI:
    """Build the FastAPI app. Services are created from config unless given."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal services
        if services is None:
            cfg = config or load_config()
            ensure_directories()
            services = build_services(cfg)
        logger.info("Starting up...")
        await services.store.open()
        app.state.services = services
        logger.info("Ready (llm available: %s)", bool(services.llm and services.llm.is_available))

        yield

        logger.info("Shutting down...")
        await services.meetings.drain()
        await services.repository_sync.drain()
        await services.store.close()

    app = FastAPI(
        title="Dionysus",
        description="Grounded answers, commit summaries and meeting notes for a code repository",
        version=__version__,
        lifespan=lifespan,
    )

    @app.exception_handler(DionysusError)
    async def handle_dionysus_error(request: Request, exc: DionysusError):
        status_code = _status_for(exc)
        detail = exc.user_message if isinstance(exc, SyncError) else str(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"detail": detail})

    def _services(request: Request) -> Services:
        return request.app.state.services

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------

    @app.get("/health")
    async def health(request: Request):
        """Health check endpoint"""
        svc = _services(request)
        return {
            "status": "healthy",
            "service": "dionysus",
            "version": __version__,
            "llm_available": bool(svc.llm and svc.llm.is_available),
        }

    @app.post("/projects", status_code=201, response_model=ProjectResponse)
    async def create_project(body: CreateProjectRequest, request: Request):
        project = await _services(request).projects.create_project(
            body.name, repo_url=body.repo_url, credential=body.credential
        )
        return ProjectResponse.from_project(project)

    @app.get("/projects", response_model=List[ProjectResponse])
    async def list_projects(request: Request):
        projects = await _services(request).projects.list_projects()
        return [ProjectResponse.from_project(p) for p in projects]

    @app.get("/projects/{project_id}", response_model=ProjectResponse)
    async def get_project(project_id: str, request: Request):
        project = await _services(request).projects.get_project(project_id)
        return ProjectResponse.from_project(project)

    @app.delete("/projects/{project_id}", status_code=204)
    async def delete_project(project_id: str, request: Request):
        await _services(request).projects.delete_project(project_id)
        return Response(status_code=204)

    @app.post("/projects/{project_id}/sync", status_code=202, response_model=SyncJob)
    async def start_sync(project_id: str, request: Request):
        return await _services(request).repository_sync.start(project_id)

    @app.get("/jobs/{job_id}", response_model=SyncJob)
    async def get_job(job_id: str, request: Request):
        return await _services(request).repository_sync.get_job(job_id)

    @app.get("/projects/{project_id}/commits", response_model=List[Commit])
    async def list_commits(project_id: str, request: Request, limit: int = Query(15, ge=1, le=100)):
        svc = _services(request)
        await svc.projects.get_project(project_id)
        return await svc.sync_engine.list_commits(project_id, limit=limit)

    @app.post("/projects/{project_id}/index")
    async def index_repository(project_id: str, body: IndexRequest, request: Request):
        svc = _services(request)
        await svc.projects.get_project(project_id)
        indexed = await svc.index.index_directory(project_id, body.root)
        return {"indexed": indexed, "count": len(indexed)}

    @app.post("/projects/{project_id}/questions", status_code=201, response_model=Question)
    async def ask_question(project_id: str, body: AskRequest, request: Request):
        svc = _services(request)
        await svc.projects.get_project(project_id)
        return await svc.answerer.answer(project_id, body.question, body.user_id)

    @app.get("/projects/{project_id}/questions", response_model=List[Question])
    async def list_questions(project_id: str, request: Request):
        return await _services(request).answerer.list_questions(project_id)

    @app.post("/projects/{project_id}/meetings", status_code=202, response_model=Meeting)
    async def create_meeting(project_id: str, body: CreateMeetingRequest, request: Request):
        return await _services(request).meetings.create_meeting(project_id, body.name, body.audio_url)

    @app.post("/projects/{project_id}/meetings/upload", status_code=202, response_model=Meeting)
    async def upload_meeting(
        project_id: str,
        request: Request,
        name: str = Query(...),
        file_name: str = Query(...),
    ):
        data = await request.body()
        return await _services(request).meetings.upload(
            project_id,
            name,
            file_name,
            data,
            content_type=request.headers.get("content-type"),
        )

    @app.get("/projects/{project_id}/meetings", response_model=List[Meeting])
    async def list_meetings(project_id: str, request: Request):
        result = await _services(request).meetings.list_meetings(project_id)
        if not result.is_ok:
            raise HTTPException(status_code=503, detail="Failed to load meetings")
        return result.value

    @app.get("/meetings/{meeting_id}", response_model=Meeting)
    async def get_meeting(meeting_id: str, request: Request):
        return await _services(request).meetings.get_meeting(meeting_id)

    @app.post("/users/sync", response_model=User)
    async def sync_user(identity: Identity, request: Request):
        return await _services(request).projects.sync_user(identity)

    return app


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the Dionysus server"""
    import uvicorn

    config = load_config()
    logging.basicConfig(
        level=logging.DEBUG if config.server.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger.info("Starting server on %s:%d", config.server.host, config.server.port)
    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
