"""Project service layer with business logic."""

import logging
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.exceptions.base import BadRequestError
from app.exceptions.conversation import ProjectNotFoundError
from app.schemas.project import ProjectCreate, ProjectResponse, ProjectUpdate
from models import Conversation, Project

logger = logging.getLogger(__name__)


class ProjectService:
    """Service class for project business logic."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_project(self, project_data: ProjectCreate) -> ProjectResponse:
        """Create a new project."""
        project = Project(
            name=project_data.name,
            description=project_data.description or None,
            instructions=project_data.instructions or None,
        )

        try:
            self.db.add(project)
            await self.db.commit()
            await self.db.refresh(project)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise BadRequestError(f"Failed to create project: {str(e)}")

        logger.info(f"Created project {project.id}")
        return self._to_response(project, conversation_count=0)

    async def list_projects(self) -> list[ProjectResponse]:
        """List projects, most recently updated first, with their conversation counts."""
        conversation_count = func.count(Conversation.id)
        stmt = (
            select(Project, conversation_count)
            .outerjoin(Conversation, Conversation.project_id == Project.id)
            .group_by(Project.id)
            .order_by(Project.updated_at.desc())
        )
        result = await self.db.execute(stmt)
        return [self._to_response(project, count) for project, count in result.all()]

    async def get_project(self, project_id: UUID) -> ProjectResponse:
        project = await self._get_project_or_404(project_id)
        return self._to_response(project, await self._get_conversation_count(project_id))

    async def update_project(self, project_id: UUID, project_data: ProjectUpdate) -> ProjectResponse:
        """Update a project."""
        project = await self._get_project_or_404(project_id)

        update_data = project_data.model_dump(exclude_unset=True)
        if update_data.get("name") is None:
            update_data.pop("name", None)
        for field, value in update_data.items():
            setattr(project, field, value)

        try:
            await self.db.commit()
            await self.db.refresh(project)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise BadRequestError(f"Failed to update project: {str(e)}")

        return self._to_response(project, await self._get_conversation_count(project_id))

    # Private helper methods
    async def _get_project_or_404(self, project_id: UUID) -> Project:
        stmt = select(Project).where(Project.id == project_id)
        result = await self.db.execute(stmt)
        project = result.scalar_one_or_none()
        if project is None:
            raise ProjectNotFoundError()
        return project

    async def _get_conversation_count(self, project_id: UUID) -> int:
        stmt = select(func.count(Conversation.id)).where(Conversation.project_id == project_id)
        result = await self.db.execute(stmt)
        return result.scalar() or 0

    @staticmethod
    def _to_response(project: Project, conversation_count: int) -> ProjectResponse:
        response = ProjectResponse.model_validate(project)
        return response.model_copy(update={"conversation_count": conversation_count})
