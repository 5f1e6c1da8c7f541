from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from coreops.audit.writer import AuditEntry, write_audit_log
from coreops.db.session import get_db, transaction
from coreops.errors import BadRequest, Conflict, NotFound
from coreops.models.governance import Project
from coreops.models.security import Division, GrantScope
from coreops.schemas.governance import ProjectCreate, ProjectOut, ProjectUpdate
from coreops.security.context import AuthContext, AuthorizationContext
from coreops.security.dependencies import get_auth_context, get_authorization
from coreops.security.month_close import RouteGroup

# Permission rules for these routes live in config/security_config.yaml.
router = APIRouter(prefix="/api/v1/governance/projects", tags=[RouteGroup.PROJECTS.value])


def _snapshot(project: Project) -> dict[str, object]:
    return {
        "code": project.code,
        "name": project.name,
        "divisionId": project.division_id,
        "version": project.version,
    }


def _get_project(db: Session, project_id: int) -> Project:
    project = db.get(Project, project_id)
    if project is None:
        raise NotFound("Project not found")
    return project


@router.get("", response_model=list[ProjectOut])
def list_projects(
    division_id: int | None = Query(default=None, alias="divisionId"),
    db: Session = Depends(get_db),
) -> list[Project]:
    # Without divisionId only a company-wide grant gets this far.
    stmt = select(Project).order_by(Project.id)
    if division_id is not None:
        stmt = stmt.where(Project.division_id == division_id)
    return list(db.scalars(stmt).all())


@router.get("/{id}", response_model=ProjectOut)
def get_project(id: int, db: Session = Depends(get_db)) -> Project:
    return _get_project(db, id)


@router.post("", response_model=ProjectOut, status_code=status.HTTP_201_CREATED)
def create_project(
    body: ProjectCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
    authz: AuthorizationContext = Depends(get_authorization),
) -> Project:
    if db.get(Division, body.division_id) is None:
        raise BadRequest("Unknown division")
    if db.execute(select(Project.id).where(Project.code == body.code)).first() is not None:
        raise Conflict("Project code already exists")

    with transaction(db):
        project = Project(code=body.code, name=body.name, division_id=body.division_id)
        db.add(project)
        db.flush()
        write_audit_log(
            db,
            AuditEntry(
                request_id=auth.request_id,
                entity_type="PROJECT",
                entity_id=project.id,
                action="CREATE",
                scope=GrantScope.DIVISION.value,
                division_id=project.division_id,
                after_data=_snapshot(project),
                actor_id=auth.user_id,
                actor_role=authz.actor_role,
            ),
        )
    return project


@router.patch("/{id}", response_model=ProjectOut)
def update_project(
    id: int,
    body: ProjectUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
    authz: AuthorizationContext = Depends(get_authorization),
) -> Project:
    with transaction(db):
        project = _get_project(db, id)
        if body.version != project.version:
            raise Conflict("Project was modified by another request", details={"currentVersion": project.version})

        before = _snapshot(project)
        if body.name is not None:
            project.name = body.name
        project.updated_at = datetime.utcnow()
        # The UPDATE carries `WHERE version = <loaded>`; a concurrent writer makes it StaleDataError.
        db.flush()

        write_audit_log(
            db,
            AuditEntry(
                request_id=auth.request_id,
                entity_type="PROJECT",
                entity_id=project.id,
                action="UPDATE",
                scope=GrantScope.DIVISION.value,
                division_id=project.division_id,
                before_data=before,
                after_data=_snapshot(project),
                actor_id=auth.user_id,
                actor_role=authz.actor_role,
            ),
        )
    return project
