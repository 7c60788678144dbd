"""
Project and user services.
"""

import logging
from typing import List, Optional

from .common.errors import InvalidInputError
from .common.retry import RetryExecutor
from .common.schemas.models import Identity, Project, User
from .common.store import Store
from .sync.history_provider import parse_github_url

logger = logging.getLogger("dionysus.projects")


class ProjectService:
    def __init__(self, store: Store, executor: RetryExecutor):
        self._store = store
        self._executor = executor

    async def create_project(
        self,
        name: str,
        repo_url: Optional[str] = None,
        credential: Optional[str] = None,
    ) -> Project:
        """
        Raises:
            InvalidInputError: blank name or a repository URL that is not GitHub's
        """
        name = (name or "").strip()
        if not name:
            raise InvalidInputError("Project name is required")
        repo_url = (repo_url or "").strip() or None
        if repo_url:
            parse_github_url(repo_url)
        credential = (credential or "").strip() or None

        result = await self._executor.execute(
            lambda: self._store.create_project(name, repo_url=repo_url, credential=credential),
            description="create project",
        )
        project = result.unwrap()
        logger.info("Created project %s (%s)", project.id, project.name)
        return project

    async def get_project(self, project_id: str) -> Project:
        result = await self._executor.execute(
            lambda: self._store.require_project(project_id),
            description=f"get project {project_id}",
        )
        return result.unwrap()

    async def list_projects(self) -> List[Project]:
        result = await self._executor.execute(self._store.list_projects, description="list projects")
        return result.unwrap()

    async def delete_project(self, project_id: str) -> None:
        result = await self._executor.execute(
            lambda: self._store.delete_project(project_id),
            description=f"delete project {project_id}",
        )
        result.unwrap()

    async def sync_user(self, identity: Identity) -> User:
        """Mirror an identity-provider user; repeat calls converge on one row."""
        if not identity.email or not identity.email.strip():
            raise InvalidInputError("User email is required")
        if not identity.external_user_id:
            raise InvalidInputError("External user id is required")
        identity = identity.model_copy(update={"email": identity.email.strip().lower()})

        result = await self._executor.execute(
            lambda: self._store.upsert_user(identity),
            description=f"sync user {identity.email}",
        )
        return result.unwrap()
