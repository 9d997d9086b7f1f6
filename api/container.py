"""
api/container.py -- Composition root: builds every store and service once.

build_services() is the only place that knows how the pieces fit together.
api/main.py calls it in lifespan, `main.py init-db` calls it to create the
schema and seed roles, and the test suite calls it against in-memory
databases. Nothing else constructs services, so swapping a store (for example
a PostgreSQL URL instead of SQLite) touches only the engine passed in here.

Wiring order follows the dependency graph:
  stores -> RoleCatalog -> MembershipResolver -> PermissionGate
         -> AuditLog -> TokenService / AuthService -> resource services

seed_defaults() runs last so the roles table exists before it is written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.engine import Engine

from activity.store import AuditLog
from auth.service import AuthService, TokenService
from auth.store import IdentityStore
from core.config import Settings
from projects.service import ProjectService
from projects.store import ProjectStore
from rbac.catalog import RoleCatalog
from rbac.gate import MembershipResolver, PermissionGate
from rbac.store import RoleStore
from tasks.comments import CommentService
from tasks.service import TaskService
from tasks.store import CommentStore, TaskStore, TimeLogStore
from tasks.time_logs import TimeLogService

logger = logging.getLogger("taskboard.api")


@dataclass
class Services:
    engine: Engine
    identities: IdentityStore
    catalog: RoleCatalog
    gate: PermissionGate
    audit: AuditLog
    tokens: TokenService
    auth: AuthService
    projects: ProjectService
    tasks: TaskService
    comments: CommentService
    time_logs: TimeLogService

    def database_ok(self) -> bool:
        """Cheap liveness check used by the health endpoint."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception:
            logger.exception("Database health check failed")
            return False
        return True


def build_services(engine: Engine, settings: Settings) -> Services:
    identities = IdentityStore(engine)
    catalog = RoleCatalog(RoleStore(engine))
    project_store = ProjectStore(engine)
    task_store = TaskStore(engine)
    audit = AuditLog(engine)

    gate = PermissionGate(project_store, MembershipResolver(project_store, catalog))
    tokens = TokenService(identities, settings)

    services = Services(
        engine=engine,
        identities=identities,
        catalog=catalog,
        gate=gate,
        audit=audit,
        tokens=tokens,
        auth=AuthService(identities, tokens, settings),
        projects=ProjectService(project_store, identities, catalog, gate, audit),
        tasks=TaskService(task_store, gate, audit),
        comments=CommentService(CommentStore(engine), task_store, gate, audit),
        time_logs=TimeLogService(TimeLogStore(engine), task_store, gate, audit),
    )
    catalog.seed_defaults()
    return services
