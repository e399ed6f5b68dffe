# SQLModel table definitions, imported so Alembic and init_db see the full metadata.
from .base import CreatedAtMixin, TimestampMixin, UUIDMixin  # noqa: F401
from .project import Project  # noqa: F401
from .task import Task  # noqa: F401
from .dependency import TaskDependency  # noqa: F401
