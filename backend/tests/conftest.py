"""
Shared fixtures for the backend tests.

Service tests run against a fresh SQLite file per test. API tests import the
FastAPI app, which reads DATABASE_PATH at import time, so it is pointed at a
temporary file here before any test module imports it.
"""

import os
import sys
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

backend_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend_root))

os.environ.setdefault("DATABASE_PATH", os.path.join(tempfile.mkdtemp(), "test_process_modeler.db"))
os.environ.setdefault("SEED_TEMPLATES", "true")

from schemas.process_flow import TemplateData
from schemas.process_management import ProcessTemplateCreate
from services.process_management_service import ProcessManagementService
from utils.auth import create_access_token

ORG_A = "org-aaaa"
ORG_B = "org-bbbb"
USER_A = "user-aaaa"
USER_B = "user-bbbb"


def make_template(steps, connections, is_public=True, name="Test Template", **kwargs) -> ProcessTemplateCreate:
    """Build a template payload from plain step/connection dicts."""
    return ProcessTemplateCreate(
        name=name,
        is_public=is_public,
        template_data=TemplateData.model_validate({"steps": steps, "connections": connections}),
        **kwargs,
    )


def step(step_id, x, y, step_type="TASK", **kwargs):
    return {"id": step_id, "name": f"Step {step_id}", "type": step_type, "position": {"x": x, "y": y}, **kwargs}


def connection(source, target, **kwargs):
    return {"sourceStepId": source, "targetStepId": target, **kwargs}


def auth_headers(user_id=USER_A, organization_id=ORG_A):
    token = create_access_token(user_id, f"{user_id}-name", organization_id)
    return {"Authorization": f"Bearer {token}"}


async def count_rows(service: ProcessManagementService, table: str) -> int:
    async with service.db.execute(f"SELECT COUNT(*) AS count FROM {table}") as cursor:
        row = await cursor.fetchone()
        return row["count"]


@pytest_asyncio.fixture
async def service(tmp_path):
    """A connected service over an empty database (no seeded templates)."""
    process_service = ProcessManagementService(str(tmp_path / "service.db"))
    await process_service.connect()
    yield process_service
    await process_service.close()


@pytest.fixture
def linear_horizontal_template():
    """Three steps laid out left-to-right, connected s1 -> s2 -> s3."""
    return make_template(
        steps=[step("s1", 0, 0, "START"), step("s2", 300, 0), step("s3", 600, 0, "END")],
        connections=[connection("s1", "s2"), connection("s2", "s3")],
        name="Linear Horizontal",
        category="claims",
    )
