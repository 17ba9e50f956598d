"""
Step ID Remapping

Template steps carry ids that are only unique inside their template ("step_0",
"s1", ...). When a template is materialized every step gets a fresh uuid, and
connections have to be rewired from template-local ids to the new ones.
A StepIdMap holds that translation for exactly one materialization.
"""

import logging
import uuid
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)


def generate_step_id() -> str:
    """Generate a persistent step identifier"""
    return str(uuid.uuid4())


class StepIdMap:
    """
    Translation table from template-local step id to generated step id.

    Populated step by step in template order. Lookups of ids that were never
    recorded return None; callers decide what to do with a missing endpoint.
    """

    def __init__(self):
        self._ids: Dict[str, str] = {}

    def record(self, template_step_id: str, generated_id: str) -> None:
        """
        Record the generated id for a template step.

        Args:
            template_step_id: Id of the step inside the template
            generated_id: Id the step was persisted with
        """
        previous = self._ids.get(template_step_id)
        if previous is not None:
            logger.warning(
                f"Duplicate template step id '{template_step_id}': "
                f"remapping from {previous} to {generated_id}"
            )
        self._ids[template_step_id] = generated_id

    def resolve(self, template_step_id: str) -> Optional[str]:
        """Return the generated id for a template step, or None if it was never recorded"""
        return self._ids.get(template_step_id)

    def resolve_connection(self, source_id: str, target_id: str) -> Optional[Tuple[str, str]]:
        """
        Resolve both endpoints of a connection.

        Args:
            source_id: Template-local id of the source step
            target_id: Template-local id of the target step

        Returns:
            (source, target) generated ids, or None if either endpoint is unknown
        """
        source = self.resolve(source_id)
        target = self.resolve(target_id)
        if source is None or target is None:
            return None
        return source, target

    def __contains__(self, template_step_id: str) -> bool:
        return template_step_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)
