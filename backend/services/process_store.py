"""
Process Store

Raw SQL access to processes, process steps and process connections.
Write methods never commit; the caller owns the transaction.
"""

import json
import uuid
from typing import List, Optional, Any

import aiosqlite

from schemas.process_flow import StepDescriptor, ConnectionDescriptor, Position
from schemas.process_management import (
    ProcessResponse, ProcessStepResponse, ProcessConnectionResponse,
    ProcessGraphResponse, ProcessStatus, ProcessType
)

PROCESS_COLUMNS = """
    id, organization_id, created_by, template_id, name, description, type,
    status, version, category, created_at, updated_at
"""

STEP_COLUMNS = """
    id, process_id, name, description, type, duration, position_x, position_y,
    "order", metadata, created_at
"""

CONNECTION_COLUMNS = """
    id, process_id, source_step_id, target_step_id, label, type, created_at
"""


class ProcessStore:
    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def create_process(
        self,
        name: str,
        description: str,
        organization_id: str,
        created_by: str,
        category: Optional[str] = None,
        template_id: Optional[str] = None,
        process_type: ProcessType = ProcessType.AS_IS,
        process_id: Optional[str] = None,
    ) -> str:
        """Insert a DRAFT process at version 1 and return its id"""
        process_id = process_id or str(uuid.uuid4())
        await self.db.execute("""
            INSERT INTO processes
                (id, organization_id, created_by, template_id, name, description, type, status, version, category)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (process_id, organization_id, created_by, template_id, name, description,
              process_type.value, ProcessStatus.DRAFT.value, 1, category))
        return process_id

    async def create_step(
        self,
        step_id: str,
        process_id: str,
        step: StepDescriptor,
        position: Position,
        order: int,
    ) -> None:
        """Insert a step with an engine-supplied id and final coordinates"""
        await self.db.execute("""
            INSERT INTO process_steps
                (id, process_id, name, description, type, duration, position_x, position_y, "order", metadata)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (step_id, process_id, step.name, step.description or "", step.type.value,
              step.duration, position.x, position.y, order, json.dumps(step.metadata or {})))

    async def create_connection(
        self,
        process_id: str,
        source_step_id: str,
        target_step_id: str,
        connection: ConnectionDescriptor,
    ) -> str:
        """Insert a connection between two materialized steps and return its id"""
        connection_id = str(uuid.uuid4())
        await self.db.execute("""
            INSERT INTO process_connections (id, process_id, source_step_id, target_step_id, label, type)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (connection_id, process_id, source_step_id, target_step_id,
              connection.label or None, connection.type.value))
        return connection_id

    # Reads
    async def get_process(self, process_id: str, organization_id: Optional[str] = None) -> Optional[ProcessResponse]:
        query = f"SELECT {PROCESS_COLUMNS} FROM processes WHERE id = ?"
        params: List[Any] = [process_id]
        if organization_id is not None:
            query += " AND organization_id = ?"
            params.append(organization_id)

        async with self.db.execute(query, params) as cursor:
            row = await cursor.fetchone()
            if not row:
                return None
            return ProcessResponse(**dict(row))

    async def get_steps(self, process_id: str) -> List[ProcessStepResponse]:
        async with self.db.execute(f"""
            SELECT {STEP_COLUMNS} FROM process_steps
            WHERE process_id = ?
            ORDER BY "order"
        """, (process_id,)) as cursor:
            rows = await cursor.fetchall()

        steps = []
        for row in rows:
            result = dict(row)
            result['metadata'] = json.loads(result['metadata'] or '{}')
            steps.append(ProcessStepResponse(**result))
        return steps

    async def get_connections(self, process_id: str) -> List[ProcessConnectionResponse]:
        async with self.db.execute(f"""
            SELECT {CONNECTION_COLUMNS} FROM process_connections
            WHERE process_id = ?
            ORDER BY rowid
        """, (process_id,)) as cursor:
            rows = await cursor.fetchall()
            return [ProcessConnectionResponse(**dict(row)) for row in rows]

    async def get_process_graph(self, process_id: str, organization_id: Optional[str] = None) -> Optional[ProcessGraphResponse]:
        """Process with its steps ordered by `order` and its connections in creation order"""
        process = await self.get_process(process_id, organization_id)
        if not process:
            return None

        steps = await self.get_steps(process_id)
        connections = await self.get_connections(process_id)
        return ProcessGraphResponse(**process.model_dump(), steps=steps, connections=connections)

