"""Project API controller with FastAPI endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_db
from app.domains.project.service import ProjectService
from app.schemas.base import ResponseSchema
from app.schemas.project import ProjectCreate, ProjectUpdate

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/projects",
    tags=["projects"],
)


@router.get("", response_model=ResponseSchema)
async def list_projects(db: AsyncSession = Depends(get_db)):
    """List projects with their conversation counts."""
    service = ProjectService(db)
    projects = await service.list_projects()

    return ResponseSchema(
        status="success",
        message="Projects retrieved successfully",
        data=[project.to_wire() for project in projects],
    )


@router.post("", response_model=ResponseSchema, status_code=201)
async def create_project(
    project_data: ProjectCreate = Body(...),
    db: AsyncSession = Depends(get_db),
):
    """Create a new project."""
    service = ProjectService(db)
    project = await service.create_project(project_data)

    return ResponseSchema(
        status="success",
        message="Project created successfully",
        data=project.to_wire(),
    )


@router.get("/{project_id}", response_model=ResponseSchema)
async def get_project(
    project_id: UUID = Path(..., description="Project ID"),
    db: AsyncSession = Depends(get_db),
):
    """Get a project by ID."""
    service = ProjectService(db)
    project = await service.get_project(project_id)

    return ResponseSchema(
        status="success",
        message="Project retrieved successfully",
        data=project.to_wire(),
    )


@router.patch("/{project_id}", response_model=ResponseSchema)
async def update_project(
    project_id: UUID = Path(..., description="Project ID"),
    project_data: ProjectUpdate = Body(...),
    db: AsyncSession = Depends(get_db),
):
    """Update a project's name, description or instructions."""
    service = ProjectService(db)
    project = await service.update_project(project_id, project_data)

    return ResponseSchema(
        status="success",
        message="Project updated successfully",
        data=project.to_wire(),
    )
