from __future__ import annotations

import json
from copy import deepcopy
from typing import Dict, Iterable, List, Optional

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String, Text, create_engine, delete, select, update
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .models import (
    ComponentOrigin,
    ComponentRecord,
    IngestJobPhase,
    IngestJobRecord,
    IngestJobState,
    ProjectRecord,
    ProjectStatus,
)

Base = declarative_base()


class ProjectModelRow(Base):
    __tablename__ = "projects"
    id = Column(String, primary_key=True)
    name = Column(String)
    file_md5 = Column(String)
    source = Column(String)
    original_file_path = Column(String)
    status = Column(Enum(ProjectStatus))
    screen_count = Column(Integer)
    extension_count = Column(Integer)
    asset_count = Column(Integer)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class IngestJobModel(Base):
    __tablename__ = "ingest_jobs"
    id = Column(String, primary_key=True)
    project_id = Column(String, index=True)
    state = Column(Enum(IngestJobState))
    phase = Column(Enum(IngestJobPhase))
    error_message = Column(String)
    diagnostic_count = Column(Integer)
    started_at = Column(DateTime)
    updated_at = Column(DateTime)


class ComponentModel(Base):
    __tablename__ = "components"
    id = Column(String, primary_key=True)
    project_id = Column(String, index=True)
    screen_name = Column(String, index=True)
    parent_id = Column(String)
    order_index = Column(Integer)
    depth = Column(Integer)
    name = Column(String)
    component_type = Column(String)
    uid = Column(String)
    origin = Column(Enum(ComponentOrigin))
    faulty = Column(Boolean)
    properties = Column(Text)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class ProjectRepository:
    """
    Abstract persistence boundary for ingested projects. Implementations can
    target SQLite/Postgres or any other backing store.
    """

    # Project operations
    def get_project(self, project_id: str) -> Optional[ProjectRecord]:
        raise NotImplementedError

    def save_project(self, project: ProjectRecord) -> None:
        raise NotImplementedError

    def list_projects(self) -> List[ProjectRecord]:
        raise NotImplementedError

    def update_project_status(
        self,
        project_id: str,
        status: ProjectStatus,
        screen_count: Optional[int] = None,
        extension_count: Optional[int] = None,
        asset_count: Optional[int] = None,
    ) -> None:
        raise NotImplementedError

    def delete_project(self, project_id: str) -> None:
        raise NotImplementedError

    # Ingest job operations
    def get_job(self, job_id: str) -> Optional[IngestJobRecord]:
        raise NotImplementedError

    def save_job(self, job: IngestJobRecord) -> None:
        raise NotImplementedError

    def update_job_state_phase(
        self,
        job_id: str,
        state: Optional[IngestJobState] = None,
        phase: Optional[IngestJobPhase] = None,
        error_message: Optional[str] = None,
        diagnostic_count: Optional[int] = None,
    ) -> None:
        raise NotImplementedError

    # Components
    def upsert_components(self, components: Iterable[ComponentRecord]) -> None:
        raise NotImplementedError

    def list_components_for_project(self, project_id: str) -> List[ComponentRecord]:
        raise NotImplementedError

    def list_components_for_screen(self, project_id: str, screen_name: str) -> List[ComponentRecord]:
        return [c for c in self.list_components_for_project(project_id) if c.screen_name == screen_name]


class InMemoryProjectRepository(ProjectRepository):
    """
    Simple in-memory store for local runs and tests. Keeps copies of the
    dataclasses to avoid cross-mutation between calls.
    """

    def __init__(self):
        self.projects: Dict[str, ProjectRecord] = {}
        self.jobs: Dict[str, IngestJobRecord] = {}
        self.components: Dict[str, ComponentRecord] = {}

    def _clone(self, obj):
        return deepcopy(obj)

    def get_project(self, project_id: str) -> Optional[ProjectRecord]:
        project = self.projects.get(project_id)
        return self._clone(project) if project else None

    def save_project(self, project: ProjectRecord) -> None:
        self.projects[project.id] = self._clone(project)

    def list_projects(self) -> List[ProjectRecord]:
        return [self._clone(p) for p in self.projects.values()]

    def update_project_status(
        self,
        project_id: str,
        status: ProjectStatus,
        screen_count: Optional[int] = None,
        extension_count: Optional[int] = None,
        asset_count: Optional[int] = None,
    ) -> None:
        project = self.projects.get(project_id)
        if not project:
            return
        project.status = status
        if screen_count is not None:
            project.screen_count = screen_count
        if extension_count is not None:
            project.extension_count = extension_count
        if asset_count is not None:
            project.asset_count = asset_count

    def delete_project(self, project_id: str) -> None:
        self.projects.pop(project_id, None)
        self.jobs = {k: v for k, v in self.jobs.items() if v.project_id != project_id}
        self.components = {k: v for k, v in self.components.items() if v.project_id != project_id}

    def get_job(self, job_id: str) -> Optional[IngestJobRecord]:
        job = self.jobs.get(job_id)
        return self._clone(job) if job else None

    def save_job(self, job: IngestJobRecord) -> None:
        self.jobs[job.id] = self._clone(job)

    def update_job_state_phase(
        self,
        job_id: str,
        state: Optional[IngestJobState] = None,
        phase: Optional[IngestJobPhase] = None,
        error_message: Optional[str] = None,
        diagnostic_count: Optional[int] = None,
    ) -> None:
        job = self.jobs.get(job_id)
        if not job:
            return
        if state is not None:
            job.state = state
        if phase is not None:
            job.phase = phase
        if error_message is not None:
            job.error_message = error_message
        if diagnostic_count is not None:
            job.diagnostic_count = diagnostic_count

    def upsert_components(self, components: Iterable[ComponentRecord]) -> None:
        for component in components:
            self.components[component.id] = self._clone(component)

    def list_components_for_project(self, project_id: str) -> List[ComponentRecord]:
        rows = [self._clone(c) for c in self.components.values() if c.project_id == project_id]
        return sorted(rows, key=lambda c: (c.screen_name, c.order_index))


class SqlAlchemyProjectRepository(ProjectRepository):
    """
    SQL-backed repository using SQLAlchemy. Works with SQLite/Postgres URLs.
    """

    def __init__(self, database_url: str):
        self.engine = create_engine(database_url, future=True)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)

    def _session(self) -> Session:
        return self.SessionLocal()

    @staticmethod
    def _to_project(model: ProjectModelRow) -> ProjectRecord:
        return ProjectRecord(
            id=model.id,
            name=model.name,
            file_md5=model.file_md5,
            source=model.source,
            original_file_path=model.original_file_path,
            status=model.status,
            screen_count=model.screen_count,
            extension_count=model.extension_count,
            asset_count=model.asset_count,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _to_component(model: ComponentModel) -> ComponentRecord:
        return ComponentRecord(
            id=model.id,
            project_id=model.project_id,
            screen_name=model.screen_name,
            parent_id=model.parent_id,
            order_index=int(model.order_index or 0),
            depth=int(model.depth or 0),
            name=model.name,
            component_type=model.component_type,
            uid=model.uid,
            origin=model.origin,
            faulty=bool(model.faulty),
            properties=json.loads(model.properties or "[]"),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    # region Project operations
    def get_project(self, project_id: str) -> Optional[ProjectRecord]:
        with self._session() as session:
            model = session.get(ProjectModelRow, project_id)
            if not model:
                return None
            return self._to_project(model)

    def save_project(self, project: ProjectRecord) -> None:
        with self._session() as session:
            model = ProjectModelRow(
                id=project.id,
                name=project.name,
                file_md5=project.file_md5,
                source=project.source,
                original_file_path=project.original_file_path,
                status=project.status,
                screen_count=project.screen_count,
                extension_count=project.extension_count,
                asset_count=project.asset_count,
                created_at=project.created_at,
                updated_at=project.updated_at,
            )
            session.merge(model)
            session.commit()

    def list_projects(self) -> List[ProjectRecord]:
        with self._session() as session:
            models = session.execute(select(ProjectModelRow)).scalars().all()
            return [self._to_project(m) for m in models]

    def update_project_status(
        self,
        project_id: str,
        status: ProjectStatus,
        screen_count: Optional[int] = None,
        extension_count: Optional[int] = None,
        asset_count: Optional[int] = None,
    ) -> None:
        with self._session() as session:
            stmt = update(ProjectModelRow).where(ProjectModelRow.id == project_id).values(status=status)
            if screen_count is not None:
                stmt = stmt.values(screen_count=screen_count)
            if extension_count is not None:
                stmt = stmt.values(extension_count=extension_count)
            if asset_count is not None:
                stmt = stmt.values(asset_count=asset_count)
            session.execute(stmt)
            session.commit()

    def delete_project(self, project_id: str) -> None:
        with self._session() as session:
            session.execute(delete(ComponentModel).where(ComponentModel.project_id == project_id))
            session.execute(delete(IngestJobModel).where(IngestJobModel.project_id == project_id))
            session.execute(delete(ProjectModelRow).where(ProjectModelRow.id == project_id))
            session.commit()

    # endregion

    # region Job operations
    def get_job(self, job_id: str) -> Optional[IngestJobRecord]:
        with self._session() as session:
            model = session.get(IngestJobModel, job_id)
            if not model:
                return None
            return IngestJobRecord(
                id=model.id,
                project_id=model.project_id,
                state=model.state,
                phase=model.phase,
                error_message=model.error_message,
                diagnostic_count=int(model.diagnostic_count or 0),
                started_at=model.started_at,
                updated_at=model.updated_at,
            )

    def save_job(self, job: IngestJobRecord) -> None:
        with self._session() as session:
            model = IngestJobModel(
                id=job.id,
                project_id=job.project_id,
                state=job.state,
                phase=job.phase,
                error_message=job.error_message,
                diagnostic_count=job.diagnostic_count,
                started_at=job.started_at,
                updated_at=job.updated_at,
            )
            session.merge(model)
            session.commit()

    def update_job_state_phase(
        self,
        job_id: str,
        state: Optional[IngestJobState] = None,
        phase: Optional[IngestJobPhase] = None,
        error_message: Optional[str] = None,
        diagnostic_count: Optional[int] = None,
    ) -> None:
        with self._session() as session:
            stmt = update(IngestJobModel).where(IngestJobModel.id == job_id)
            values = {}
            if state is not None:
                values["state"] = state
            if phase is not None:
                values["phase"] = phase
            if error_message is not None:
                values["error_message"] = error_message
            if diagnostic_count is not None:
                values["diagnostic_count"] = diagnostic_count
            if values:
                session.execute(stmt.values(**values))
                session.commit()

    # endregion

    # region Components
    def upsert_components(self, components: Iterable[ComponentRecord]) -> None:
        with self._session() as session:
            for component in components:
                model = ComponentModel(
                    id=component.id,
                    project_id=component.project_id,
                    screen_name=component.screen_name,
                    parent_id=component.parent_id,
                    order_index=component.order_index,
                    depth=component.depth,
                    name=component.name,
                    component_type=component.component_type,
                    uid=component.uid,
                    origin=component.origin,
                    faulty=component.faulty,
                    properties=json.dumps(component.properties, ensure_ascii=False),
                    created_at=component.created_at,
                    updated_at=component.updated_at,
                )
                session.merge(model)
            session.commit()

    def list_components_for_project(self, project_id: str) -> List[ComponentRecord]:
        with self._session() as session:
            stmt = (
                select(ComponentModel)
                .where(ComponentModel.project_id == project_id)
                .order_by(ComponentModel.screen_name, ComponentModel.order_index)
            )
            models = session.execute(stmt).scalars().all()
            return [self._to_component(m) for m in models]

    def list_components_for_screen(self, project_id: str, screen_name: str) -> List[ComponentRecord]:
        with self._session() as session:
            stmt = (
                select(ComponentModel)
                .where(ComponentModel.project_id == project_id, ComponentModel.screen_name == screen_name)
                .order_by(ComponentModel.order_index)
            )
            models = session.execute(stmt).scalars().all()
            return [self._to_component(m) for m in models]

    # endregion
