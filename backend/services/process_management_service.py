import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional, Dict, Any, Union

import aiosqlite
from pydantic import ValidationError

from init_db import load_schema
from schemas.process_management import (
    ProcessTemplateCreate, ProcessTemplateUpdate, ProcessTemplateResponse,
    UseTemplateRequest, GeneratedProcessCreate, ProcessGraphResponse
)
from services.errors import (
    TemplateNotFoundError, ProcessNotFoundError, TemplateValidationError, PersistenceError
)
from services.graph_materializer import GraphMaterializer
from services.process_store import ProcessStore
from services.process_templates import TemplateCatalog

logger = logging.getLogger(__name__)


class ProcessManagementService:
    def __init__(self, database_path: str):
        self.database_path = database_path
        self.db: Optional[aiosqlite.Connection] = None
        self.templates: Optional[TemplateCatalog] = None
        self.store: Optional[ProcessStore] = None
        self.materializer = GraphMaterializer()
        # One connection is shared by all requests, so units of work and reads take turns
        self._lock = asyncio.Lock()

    async def connect(self, seed_templates: bool = False):
        """Initialize database connection and make sure the schema exists"""
        self.db = await aiosqlite.connect(self.database_path, isolation_level=None)
        self.db.row_factory = aiosqlite.Row
        await self.db.execute("PRAGMA foreign_keys = ON")
        await self.db.executescript(load_schema())

        self.templates = TemplateCatalog(self.db)
        self.store = ProcessStore(self.db)

        if seed_templates:
            async with self.unit_of_work():
                await self.templates.seed_builtin_templates()

    async def close(self):
        """Close database connection"""
        if self.db:
            await self.db.close()
            self.db = None

    @asynccontextmanager
    async def unit_of_work(self):
        """
        Run a block as one transaction. Nothing written inside is visible to
        other callers until the block finishes; any exception rolls it all back.
        """
        async with self._lock:
            await self.db.execute("BEGIN")
            try:
                yield
                await self.db.execute("COMMIT")
            except BaseException:
                if self.db.in_transaction:
                    await self.db.execute("ROLLBACK")
                raise

    # Template Methods
    async def list_templates(
        self,
        organization_id: Optional[str],
        category: Optional[str] = None,
        industry_sector: Optional[str] = None,
    ) -> List[ProcessTemplateResponse]:
        async with self._lock:
            return await self.templates.list_templates(organization_id, category, industry_sector)

    async def get_template_categories(self, organization_id: Optional[str]) -> List[str]:
        async with self._lock:
            return await self.templates.get_categories(organization_id)

    async def get_template(self, template_id: str, organization_id: Optional[str]) -> ProcessTemplateResponse:
        async with self._lock:
            template = await self.templates.find_template(template_id, organization_id)
        if not template:
            raise TemplateNotFoundError(template_id)
        return template

    async def create_template(self, template_data: ProcessTemplateCreate, organization_id: Optional[str]) -> ProcessTemplateResponse:
        if not template_data.is_public and not organization_id:
            raise TemplateValidationError("Private templates require an organization")

        try:
            async with self.unit_of_work():
                template_id = await self.templates.create_template(template_data, organization_id)
                template = await self.templates.find_template(template_id, organization_id)
        except aiosqlite.Error as e:
            logger.error(f"Failed to create template '{template_data.name}': {e}", exc_info=True)
            raise PersistenceError(f"Failed to create template: {e}") from e

        logger.info(f"Created template {template_id} ({'public' if template.is_public else organization_id})")
        return template

    async def update_template(
        self,
        template_id: str,
        template_data: ProcessTemplateUpdate,
        organization_id: Optional[str],
    ) -> ProcessTemplateResponse:
        """Update a template owned by the caller's organization"""
        try:
            async with self.unit_of_work():
                if not await self.templates.find_owned_template(template_id, organization_id):
                    raise TemplateNotFoundError(template_id)
                await self.templates.update_template(template_id, template_data)
                template = await self.templates.find_owned_template(template_id, organization_id)
        except aiosqlite.Error as e:
            logger.error(f"Failed to update template {template_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update template: {e}") from e
        return template

    async def delete_template(self, template_id: str, organization_id: Optional[str]) -> None:
        """Delete a template owned by the caller's organization"""
        try:
            async with self.unit_of_work():
                if not await self.templates.find_owned_template(template_id, organization_id):
                    raise TemplateNotFoundError(template_id)
                await self.templates.delete_template(template_id)
        except aiosqlite.Error as e:
            logger.error(f"Failed to delete template {template_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete template: {e}") from e

    # Process Methods
    async def create_process_from_template(
        self,
        template_id: str,
        overrides: Union[UseTemplateRequest, Dict[str, Any], None],
        organization_id: str,
        user_id: str,
    ) -> ProcessGraphResponse:
        """
        Instantiate a template as a new DRAFT process owned by the caller's organization.

        Process, steps, connections and the usage count are written in one
        transaction. Connections whose endpoints are not steps of the template
        are skipped. A failure to record usage is logged and does not undo the
        new process.

        Raises:
            TemplateNotFoundError: template missing or private to another organization
            TemplateValidationError: overrides rejected
            PersistenceError: a write failed; nothing was created
        """
        overrides = self._validate_overrides(overrides)

        try:
            async with self.unit_of_work():
                template = await self.templates.find_template(template_id, organization_id)
                if not template:
                    raise TemplateNotFoundError(template_id)

                logger.info(f"Creating process from template {template_id} for organization {organization_id}")

                process_id = await self.store.create_process(
                    name=overrides.name or template.name,
                    description=overrides.description or template.description or "",
                    organization_id=organization_id,
                    created_by=user_id,
                    category=template.category,
                    template_id=template.id,
                )
                result = await self.materializer.materialize(
                    self.store, process_id, template.template_data, normalize_layout=True
                )
                await self._track_usage(template.id)

                process = await self.store.get_process_graph(process_id)
        except aiosqlite.Error as e:
            logger.error(f"Failed to create process from template {template_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to create process from template: {e}") from e

        logger.info(
            f"Created process {process_id} from template {template_id}: "
            f"{len(result.step_ids)} steps, {len(result.connection_ids)} connections, "
            f"{len(result.dropped_connections)} dropped "
            f"({self.materializer.dropped_connections_total} dropped since startup), "
            f"{result.orientation.value} layout"
        )
        return process

    async def create_process_from_graph(
        self,
        process_data: GeneratedProcessCreate,
        organization_id: str,
        user_id: str,
    ) -> ProcessGraphResponse:
        """Persist a generated graph as-is; its coordinates are already final"""
        try:
            async with self.unit_of_work():
                process_id = await self.store.create_process(
                    name=process_data.name,
                    description=process_data.description,
                    organization_id=organization_id,
                    created_by=user_id,
                    category=process_data.category,
                    process_type=process_data.type,
                )
                result = await self.materializer.materialize(
                    self.store, process_id, process_data.graph, normalize_layout=False
                )
                process = await self.store.get_process_graph(process_id)
        except aiosqlite.Error as e:
            logger.error(f"Failed to create process '{process_data.name}': {e}", exc_info=True)
            raise PersistenceError(f"Failed to create process: {e}") from e

        logger.info(
            f"Created process {process_id} from generated graph: "
            f"{len(result.step_ids)} steps, {len(result.connection_ids)} connections, "
            f"{len(result.dropped_connections)} dropped "
            f"({self.materializer.dropped_connections_total} dropped since startup)"
        )
        return process

    async def get_process(self, process_id: str, organization_id: str) -> ProcessGraphResponse:
        async with self._lock:
            process = await self.store.get_process_graph(process_id, organization_id)
        if not process:
            raise ProcessNotFoundError(process_id)
        return process

    async def _track_usage(self, template_id: str):
        # Savepoint keeps a failed increment from aborting the surrounding transaction
        await self.db.execute("SAVEPOINT template_usage")
        try:
            await self.templates.increment_usage(template_id)
        except aiosqlite.Error as e:
            await self.db.execute("ROLLBACK TO SAVEPOINT template_usage")
            logger.error(f"Failed to record usage for template {template_id}: {e}")
        finally:
            await self.db.execute("RELEASE SAVEPOINT template_usage")

    def _validate_overrides(self, overrides) -> UseTemplateRequest:
        if overrides is None:
            return UseTemplateRequest()
        if isinstance(overrides, UseTemplateRequest):
            overrides = overrides.model_dump()
        try:
            return UseTemplateRequest.model_validate(overrides)
        except ValidationError as e:
            raise TemplateValidationError("Invalid template overrides", errors=e.errors()) from e
