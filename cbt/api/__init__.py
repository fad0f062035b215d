"""API route package — imports all routers for main.py."""

from cbt.api.health import router as health_router  # noqa: F401
from cbt.api.exams import router as exams_router  # noqa: F401
from cbt.api.attempts import router as attempts_router  # noqa: F401
