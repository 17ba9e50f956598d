"""
Graph Materializer

Writes a step/connection graph into an existing process. Used both for
templates (with layout normalization) and for generated graphs that already
carry final coordinates.

Creation is strictly two-phase: every step is written and recorded in the
StepIdMap before the first connection is resolved.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from schemas.process_flow import TemplateData, ConnectionDescriptor
from services.layout import Orientation, normalize_positions
from services.process_store import ProcessStore
from services.step_id import StepIdMap, generate_step_id

logger = logging.getLogger(__name__)


@dataclass
class MaterializationResult:
    process_id: str
    orientation: Orientation
    step_ids: List[str] = field(default_factory=list)
    connection_ids: List[str] = field(default_factory=list)
    dropped_connections: List[ConnectionDescriptor] = field(default_factory=list)


class GraphMaterializer:
    """
    Materializes template graphs into persisted process steps and connections.
    Does not open or commit transactions.
    """

    def __init__(self):
        self.dropped_connections_total = 0

    async def materialize(
        self,
        store: ProcessStore,
        process_id: str,
        graph: TemplateData,
        normalize_layout: bool = True,
    ) -> MaterializationResult:
        """
        Create one step per descriptor and one connection per resolvable descriptor.

        Args:
            store: Store bound to the connection of the current transaction
            process_id: Process the graph is written into
            graph: Steps (ordered) and connections
            normalize_layout: Rotate horizontal layouts to vertical

        Returns:
            MaterializationResult with generated ids and the dropped connections
        """
        positions = [step.position for step in graph.steps]
        if normalize_layout:
            orientation, positions = normalize_positions(positions)
        else:
            orientation = Orientation.VERTICAL

        result = MaterializationResult(process_id=process_id, orientation=orientation)
        id_map = StepIdMap()

        for order, (step, position) in enumerate(zip(graph.steps, positions)):
            step_id = generate_step_id()
            await store.create_step(step_id, process_id, step, position, order)
            id_map.record(step.id, step_id)
            result.step_ids.append(step_id)

        for connection in graph.connections:
            endpoints = id_map.resolve_connection(connection.source_step_id, connection.target_step_id)
            if endpoints is None:
                self._record_dropped(process_id, connection, id_map)
                result.dropped_connections.append(connection)
                continue

            source_id, target_id = endpoints
            connection_id = await store.create_connection(process_id, source_id, target_id, connection)
            result.connection_ids.append(connection_id)

        return result

    def _record_dropped(self, process_id: str, connection: ConnectionDescriptor, id_map: StepIdMap):
        self.dropped_connections_total += 1
        missing = [
            step_id for step_id in (connection.source_step_id, connection.target_step_id)
            if step_id not in id_map
        ]
        logger.warning(
            f"Dropped connection {connection.source_step_id} -> {connection.target_step_id} "
            f"for process {process_id}: unknown step id(s) {', '.join(missing)}"
        )
