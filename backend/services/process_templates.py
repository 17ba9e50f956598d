"""
Process Templates Catalog
Stores reusable process blueprints that organizations instantiate into new processes.
Templates are either public or scoped to the organization that created them.
"""

import json
import logging
import uuid
from typing import List, Dict, Optional, Any

import aiosqlite

from schemas.process_flow import TemplateData, validate_template_graph
from schemas.process_management import (
    ProcessTemplateCreate, ProcessTemplateUpdate, ProcessTemplateResponse
)

logger = logging.getLogger(__name__)

TEMPLATE_COLUMNS = """
    id, organization_id, name, description, category, subcategory, industry_sector,
    template_data, preview_image_url, is_public, usage_count, created_at, updated_at
"""

# Visible to an organization: public templates plus its own private ones
VISIBILITY_FILTER = "(is_public = 1 OR organization_id = ?)"


class TemplateCatalog:
    """
    Template storage and lookup.
    Write methods do not commit; ProcessManagementService runs them inside a transaction.
    """

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    def _row_to_template(self, row) -> ProcessTemplateResponse:
        result = dict(row)
        result['template_data'] = TemplateData.model_validate(json.loads(result['template_data']))
        result['is_public'] = bool(result['is_public'])
        return ProcessTemplateResponse(**result)

    async def list_templates(
        self,
        organization_id: Optional[str],
        category: Optional[str] = None,
        industry_sector: Optional[str] = None,
    ) -> List[ProcessTemplateResponse]:
        """Visible templates, most used first"""
        query = f"SELECT {TEMPLATE_COLUMNS} FROM process_templates WHERE {VISIBILITY_FILTER}"
        params: List[Any] = [organization_id]

        if category:
            query += " AND category = ?"
            params.append(category)
        if industry_sector:
            query += " AND industry_sector = ?"
            params.append(industry_sector)

        query += " ORDER BY usage_count DESC, created_at DESC, rowid DESC"

        async with self.db.execute(query, params) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_template(row) for row in rows]

    async def get_categories(self, organization_id: Optional[str]) -> List[str]:
        """Distinct categories among visible templates"""
        async with self.db.execute(f"""
            SELECT DISTINCT category FROM process_templates
            WHERE {VISIBILITY_FILTER} AND category IS NOT NULL
            ORDER BY category
        """, (organization_id,)) as cursor:
            rows = await cursor.fetchall()
            return [row['category'] for row in rows]

    async def find_template(self, template_id: str, organization_id: Optional[str]) -> Optional[ProcessTemplateResponse]:
        """
        Look up a template the organization may see.

        Private templates of other organizations return None, exactly like
        templates that do not exist.
        """
        async with self.db.execute(f"""
            SELECT {TEMPLATE_COLUMNS} FROM process_templates
            WHERE id = ? AND {VISIBILITY_FILTER}
        """, (template_id, organization_id)) as cursor:
            row = await cursor.fetchone()
            return self._row_to_template(row) if row else None

    async def find_owned_template(self, template_id: str, organization_id: Optional[str]) -> Optional[ProcessTemplateResponse]:
        """Look up a template owned by the organization (required for update/delete)"""
        if organization_id is None:
            return None
        async with self.db.execute(f"""
            SELECT {TEMPLATE_COLUMNS} FROM process_templates
            WHERE id = ? AND organization_id = ?
        """, (template_id, organization_id)) as cursor:
            row = await cursor.fetchone()
            return self._row_to_template(row) if row else None

    async def create_template(self, template_data: ProcessTemplateCreate, organization_id: Optional[str]) -> str:
        """Insert a template and return its id. Public templates are not tied to an organization."""
        template_id = str(uuid.uuid4())

        for warning in validate_template_graph(template_data.template_data):
            logger.warning(f"Template '{template_data.name}': {warning}")

        await self.db.execute("""
            INSERT INTO process_templates
                (id, organization_id, name, description, category, subcategory, industry_sector,
                 template_data, preview_image_url, is_public)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (template_id, None if template_data.is_public else organization_id,
              template_data.name, template_data.description, template_data.category,
              template_data.subcategory, template_data.industry_sector,
              json.dumps(template_data.template_data.to_storage()),
              template_data.preview_image_url, int(template_data.is_public)))
        return template_id

    async def update_template(self, template_id: str, template_data: ProcessTemplateUpdate) -> None:
        """Apply the provided fields of an update"""
        updates = []
        params: List[Any] = []

        for column in ("name", "description", "category", "subcategory", "preview_image_url"):
            value = getattr(template_data, column)
            if value is not None:
                updates.append(f"{column} = ?")
                params.append(value)
        if template_data.is_public is not None:
            updates.append("is_public = ?")
            params.append(int(template_data.is_public))
        if template_data.template_data is not None:
            for warning in validate_template_graph(template_data.template_data):
                logger.warning(f"Template {template_id}: {warning}")
            updates.append("template_data = ?")
            params.append(json.dumps(template_data.template_data.to_storage()))

        if not updates:
            return

        updates.append("updated_at = CURRENT_TIMESTAMP")
        params.append(template_id)

        query = f"UPDATE process_templates SET {', '.join(updates)} WHERE id = ?"
        await self.db.execute(query, params)

    async def delete_template(self, template_id: str) -> None:
        await self.db.execute("DELETE FROM process_templates WHERE id = ?", (template_id,))

    async def increment_usage(self, template_id: str) -> None:
        """Add exactly one use. Single UPDATE so concurrent increments never lose a count."""
        await self.db.execute(
            "UPDATE process_templates SET usage_count = usage_count + 1 WHERE id = ?",
            (template_id,)
        )

    async def find_template_by_name(self, name: str) -> Optional[ProcessTemplateResponse]:
        async with self.db.execute(f"""
            SELECT {TEMPLATE_COLUMNS} FROM process_templates
            WHERE name = ?
            ORDER BY rowid
            LIMIT 1
        """, (name,)) as cursor:
            row = await cursor.fetchone()
            return self._row_to_template(row) if row else None

    async def seed_builtin_templates(self) -> int:
        """Insert the built-in public templates that are not in the catalog yet. Returns how many were added."""
        added = 0
        for template in get_builtin_templates():
            if await self.find_template_by_name(template.name):
                logger.info(f"Template '{template.name}' already exists, skipping")
                continue
            await self.create_template(template, organization_id=None)
            logger.info(f"Created built-in template: {template.name}")
            added += 1
        return added


def get_builtin_templates() -> List[ProcessTemplateCreate]:
    """Public templates shipped with the application"""
    return [ProcessTemplateCreate.model_validate(template) for template in BUILTIN_TEMPLATES]


# All three are drawn left-to-right; instantiation rotates them into a vertical flow
BUILTIN_TEMPLATES: List[Dict[str, Any]] = [
    {
        "name": "Auto Claims Processing",
        "description": "Complete workflow for handling auto insurance claims from initial report through settlement and closure.",
        "category": "claims",
        "industry_sector": "insurance",
        "is_public": True,
        "template_data": {
            "steps": [
                {
                    "id": "step_0",
                    "name": "Claim Reported",
                    "description": "Customer reports accident or damage via phone, app, or website",
                    "type": "START",
                    "duration": None,
                    "position": {"x": 100, "y": 200},
                    "metadata": {
                        "responsibleRole": "Claims Intake Specialist",
                        "department": "Claims",
                        "requiredSystems": ["Claims Management System", "CRM"],
                    },
                },
                {
                    "id": "step_1",
                    "name": "Capture Claim Details",
                    "description": "Gather incident information, policy details, and initial documentation",
                    "type": "TASK",
                    "duration": 15,
                    "position": {"x": 350, "y": 200},
                    "metadata": {
                        "responsibleRole": "Claims Intake Specialist",
                        "department": "Claims",
                        "requiredSystems": ["Claims Management System"],
                    },
                },
                {
                    "id": "step_2",
                    "name": "Verify Coverage",
                    "description": "Check policy status, coverage limits, and deductibles",
                    "type": "TASK",
                    "duration": 10,
                    "position": {"x": 600, "y": 200},
                    "metadata": {
                        "responsibleRole": "Claims Analyst",
                        "department": "Claims",
                        "requiredSystems": ["Policy Administration System"],
                    },
                },
                {
                    "id": "step_3",
                    "name": "Coverage Valid?",
                    "description": "Decision point: Is the claim covered under the policy?",
                    "type": "DECISION",
                    "duration": 5,
                    "position": {"x": 850, "y": 200},
                    "metadata": {
                        "responsibleRole": "Claims Analyst",
                        "department": "Claims",
                    },
                },
                {
                    "id": "step_4",
                    "name": "Assign Adjuster",
                    "description": "Route claim to appropriate claims adjuster based on complexity and location",
                    "type": "TASK",
                    "duration": 5,
                    "position": {"x": 1100, "y": 100},
                    "metadata": {
                        "responsibleRole": "Claims Supervisor",
                        "department": "Claims",
                        "requiredSystems": ["Workflow Management"],
                    },
                },
                {
                    "id": "step_5",
                    "name": "Investigate Claim",
                    "description": "Adjuster reviews evidence, inspects damage, and interviews involved parties",
                    "type": "TASK",
                    "duration": 120,
                    "position": {"x": 1350, "y": 100},
                    "metadata": {
                        "responsibleRole": "Claims Adjuster",
                        "department": "Claims",
                        "requiredSystems": ["Mobile Inspection App", "Photo Management"],
                    },
                },
                {
                    "id": "step_6",
                    "name": "Determine Settlement Amount",
                    "description": "Calculate repair costs or total loss value based on investigation",
                    "type": "TASK",
                    "duration": 30,
                    "position": {"x": 1600, "y": 100},
                    "metadata": {
                        "responsibleRole": "Claims Adjuster",
                        "department": "Claims",
                        "requiredSystems": ["Estimating Software", "Valuation Tools"],
                    },
                },
                {
                    "id": "step_7",
                    "name": "Process Payment",
                    "description": "Issue payment to claimant or repair facility",
                    "type": "TASK",
                    "duration": 10,
                    "position": {"x": 1850, "y": 100},
                    "metadata": {
                        "responsibleRole": "Claims Processor",
                        "department": "Claims",
                        "requiredSystems": ["Payment System"],
                    },
                },
                {
                    "id": "step_8",
                    "name": "Close Claim",
                    "description": "Finalize claim documentation and archive records",
                    "type": "TASK",
                    "duration": 5,
                    "position": {"x": 2100, "y": 100},
                    "metadata": {
                        "responsibleRole": "Claims Processor",
                        "department": "Claims",
                        "requiredSystems": ["Claims Management System", "Document Management"],
                    },
                },
                {
                    "id": "step_9",
                    "name": "Deny Claim",
                    "description": "Send denial letter with explanation and appeal rights",
                    "type": "TASK",
                    "duration": 15,
                    "position": {"x": 1100, "y": 300},
                    "metadata": {
                        "responsibleRole": "Claims Analyst",
                        "department": "Claims",
                        "requiredSystems": ["Document Generation"],
                    },
                },
                {
                    "id": "step_10",
                    "name": "Claim Completed",
                    "description": "Claim process finished",
                    "type": "END",
                    "duration": None,
                    "position": {"x": 2350, "y": 200},
                    "metadata": {},
                },
            ],
            "connections": [
                {"sourceStepId": "step_0", "targetStepId": "step_1", "type": "DEFAULT"},
                {"sourceStepId": "step_1", "targetStepId": "step_2", "type": "DEFAULT"},
                {"sourceStepId": "step_2", "targetStepId": "step_3", "type": "DEFAULT"},
                {"sourceStepId": "step_3", "targetStepId": "step_4", "label": "Yes", "type": "CONDITIONAL"},
                {"sourceStepId": "step_3", "targetStepId": "step_9", "label": "No", "type": "CONDITIONAL"},
                {"sourceStepId": "step_4", "targetStepId": "step_5", "type": "DEFAULT"},
                {"sourceStepId": "step_5", "targetStepId": "step_6", "type": "DEFAULT"},
                {"sourceStepId": "step_6", "targetStepId": "step_7", "type": "DEFAULT"},
                {"sourceStepId": "step_7", "targetStepId": "step_8", "type": "DEFAULT"},
                {"sourceStepId": "step_8", "targetStepId": "step_10", "type": "DEFAULT"},
                {"sourceStepId": "step_9", "targetStepId": "step_10", "type": "DEFAULT"},
            ],
        },
    },
    {
        "name": "Commercial Underwriting",
        "description": "Complete underwriting process for commercial property insurance from application through policy issuance.",
        "category": "underwriting",
        "industry_sector": "insurance",
        "is_public": True,
        "template_data": {
            "steps": [
                {
                    "id": "step_0",
                    "name": "Application Received",
                    "description": "New commercial insurance application submitted by broker or customer",
                    "type": "START",
                    "duration": None,
                    "position": {"x": 100, "y": 200},
                    "metadata": {
                        "responsibleRole": "Underwriting Assistant",
                        "department": "Underwriting",
                    },
                },
                {
                    "id": "step_1",
                    "name": "Pre-Qualify Application",
                    "description": "Review basic eligibility criteria and completeness of submission",
                    "type": "TASK",
                    "duration": 20,
                    "position": {"x": 350, "y": 200},
                    "metadata": {
                        "responsibleRole": "Underwriting Assistant",
                        "department": "Underwriting",
                        "requiredSystems": ["Underwriting Workbench"],
                    },
                },
                {
                    "id": "step_2",
                    "name": "Conduct Risk Assessment",
                    "description": "Analyze property characteristics, location hazards, and business operations",
                    "type": "TASK",
                    "duration": 90,
                    "position": {"x": 600, "y": 200},
                    "metadata": {
                        "responsibleRole": "Senior Underwriter",
                        "department": "Underwriting",
                        "requiredSystems": ["Risk Modeling System", "GIS Tools"],
                    },
                },
                {
                    "id": "step_3",
                    "name": "Order Inspections",
                    "description": "Request property inspection and loss control survey if needed",
                    "type": "TASK",
                    "duration": 15,
                    "position": {"x": 850, "y": 200},
                    "metadata": {
                        "responsibleRole": "Underwriter",
                        "department": "Underwriting",
                        "requiredSystems": ["Inspection Scheduling System"],
                    },
                },
                {
                    "id": "step_4",
                    "name": "Calculate Premium",
                    "description": "Determine pricing based on risk factors, exposure, and rate manual",
                    "type": "TASK",
                    "duration": 45,
                    "position": {"x": 1100, "y": 200},
                    "metadata": {
                        "responsibleRole": "Underwriter",
                        "department": "Underwriting",
                        "requiredSystems": ["Rating Engine", "Pricing Tools"],
                    },
                },
                {
                    "id": "step_5",
                    "name": "Prepare Quote",
                    "description": "Generate formal quote document with terms and conditions",
                    "type": "TASK",
                    "duration": 30,
                    "position": {"x": 1350, "y": 200},
                    "metadata": {
                        "responsibleRole": "Underwriter",
                        "department": "Underwriting",
                        "requiredSystems": ["Document Generation"],
                    },
                },
                {
                    "id": "step_6",
                    "name": "Quote Approved?",
                    "description": "Customer accepts quote and provides payment?",
                    "type": "DECISION",
                    "duration": None,
                    "position": {"x": 1600, "y": 200},
                    "metadata": {
                        "responsibleRole": "Underwriter",
                        "department": "Underwriting",
                    },
                },
                {
                    "id": "step_7",
                    "name": "Bind Coverage",
                    "description": "Activate coverage and generate binder confirmation",
                    "type": "TASK",
                    "duration": 15,
                    "position": {"x": 1850, "y": 100},
                    "metadata": {
                        "responsibleRole": "Underwriter",
                        "department": "Underwriting",
                        "requiredSystems": ["Policy Administration System"],
                    },
                },
                {
                    "id": "step_8",
                    "name": "Issue Policy",
                    "description": "Generate and deliver final policy documents",
                    "type": "TASK",
                    "duration": 20,
                    "position": {"x": 2100, "y": 100},
                    "metadata": {
                        "responsibleRole": "Policy Services",
                        "department": "Underwriting",
                        "requiredSystems": ["Policy Administration System", "Document Management"],
                    },
                },
                {
                    "id": "step_9",
                    "name": "Decline Application",
                    "description": "Send declination notice with reason",
                    "type": "TASK",
                    "duration": 10,
                    "position": {"x": 1850, "y": 300},
                    "metadata": {
                        "responsibleRole": "Underwriter",
                        "department": "Underwriting",
                        "requiredSystems": ["Document Generation"],
                    },
                },
                {
                    "id": "step_10",
                    "name": "Process Complete",
                    "description": "Underwriting process finished",
                    "type": "END",
                    "duration": None,
                    "position": {"x": 2350, "y": 200},
                    "metadata": {},
                },
            ],
            "connections": [
                {"sourceStepId": "step_0", "targetStepId": "step_1", "type": "DEFAULT"},
                {"sourceStepId": "step_1", "targetStepId": "step_2", "type": "DEFAULT"},
                {"sourceStepId": "step_2", "targetStepId": "step_3", "type": "DEFAULT"},
                {"sourceStepId": "step_3", "targetStepId": "step_4", "type": "DEFAULT"},
                {"sourceStepId": "step_4", "targetStepId": "step_5", "type": "DEFAULT"},
                {"sourceStepId": "step_5", "targetStepId": "step_6", "type": "DEFAULT"},
                {"sourceStepId": "step_6", "targetStepId": "step_7", "label": "Accepted", "type": "CONDITIONAL"},
                {"sourceStepId": "step_6", "targetStepId": "step_9", "label": "Declined", "type": "CONDITIONAL"},
                {"sourceStepId": "step_7", "targetStepId": "step_8", "type": "DEFAULT"},
                {"sourceStepId": "step_8", "targetStepId": "step_10", "type": "DEFAULT"},
                {"sourceStepId": "step_9", "targetStepId": "step_10", "type": "DEFAULT"},
            ],
        },
    },
    {
        "name": "Policy Renewal Process",
        "description": "Annual policy renewal workflow including re-underwriting, rate adjustment, and renewal confirmation.",
        "category": "policy",
        "industry_sector": "insurance",
        "is_public": True,
        "template_data": {
            "steps": [
                {
                    "id": "step_0",
                    "name": "Renewal Date Approaching",
                    "description": "System identifies policies due for renewal in 60 days",
                    "type": "START",
                    "duration": None,
                    "position": {"x": 100, "y": 200},
                    "metadata": {
                        "department": "Policy Administration",
                        "requiredSystems": ["Policy Administration System"],
                    },
                },
                {
                    "id": "step_1",
                    "name": "Review Policy Performance",
                    "description": "Analyze claims history, loss ratio, and payment history",
                    "type": "TASK",
                    "duration": 30,
                    "position": {"x": 350, "y": 200},
                    "metadata": {
                        "responsibleRole": "Underwriter",
                        "department": "Underwriting",
                        "requiredSystems": ["Analytics Platform"],
                    },
                },
                {
                    "id": "step_2",
                    "name": "Re-Underwrite Risk",
                    "description": "Reassess risk factors and update risk classification",
                    "type": "TASK",
                    "duration": 45,
                    "position": {"x": 600, "y": 200},
                    "metadata": {
                        "responsibleRole": "Underwriter",
                        "department": "Underwriting",
                        "requiredSystems": ["Underwriting Workbench"],
                    },
                },
                {
                    "id": "step_3",
                    "name": "Calculate Renewal Premium",
                    "description": "Apply rate changes, update exposures, and calculate new premium",
                    "type": "TASK",
                    "duration": 25,
                    "position": {"x": 850, "y": 200},
                    "metadata": {
                        "responsibleRole": "Underwriter",
                        "department": "Underwriting",
                        "requiredSystems": ["Rating Engine"],
                    },
                },
                {
                    "id": "step_4",
                    "name": "Generate Renewal Offer",
                    "description": "Create renewal notice with new terms and premium",
                    "type": "TASK",
                    "duration": 15,
                    "position": {"x": 1100, "y": 200},
                    "metadata": {
                        "responsibleRole": "Policy Services",
                        "department": "Policy Administration",
                        "requiredSystems": ["Document Generation"],
                    },
                },
                {
                    "id": "step_5",
                    "name": "Send Renewal Notice",
                    "description": "Mail or email renewal offer to policyholder 30-45 days before expiration",
                    "type": "TASK",
                    "duration": 5,
                    "position": {"x": 1350, "y": 200},
                    "metadata": {
                        "responsibleRole": "Policy Services",
                        "department": "Policy Administration",
                        "requiredSystems": ["Email System", "Postal Service"],
                    },
                },
                {
                    "id": "step_6",
                    "name": "Customer Response?",
                    "description": "Did customer accept renewal?",
                    "type": "DECISION",
                    "duration": None,
                    "position": {"x": 1600, "y": 200},
                    "metadata": {
                        "department": "Policy Administration",
                    },
                },
                {
                    "id": "step_7",
                    "name": "Process Renewal Payment",
                    "description": "Collect and apply renewal premium payment",
                    "type": "TASK",
                    "duration": 10,
                    "position": {"x": 1850, "y": 100},
                    "metadata": {
                        "responsibleRole": "Billing Specialist",
                        "department": "Billing",
                        "requiredSystems": ["Payment Processing System"],
                    },
                },
                {
                    "id": "step_8",
                    "name": "Issue Renewed Policy",
                    "description": "Generate new policy documents for renewal term",
                    "type": "TASK",
                    "duration": 15,
                    "position": {"x": 2100, "y": 100},
                    "metadata": {
                        "responsibleRole": "Policy Services",
                        "department": "Policy Administration",
                        "requiredSystems": ["Policy Administration System"],
                    },
                },
                {
                    "id": "step_9",
                    "name": "Cancel Policy",
                    "description": "Process non-renewal and send cancellation confirmation",
                    "type": "TASK",
                    "duration": 10,
                    "position": {"x": 1850, "y": 300},
                    "metadata": {
                        "responsibleRole": "Policy Services",
                        "department": "Policy Administration",
                        "requiredSystems": ["Policy Administration System"],
                    },
                },
                {
                    "id": "step_10",
                    "name": "Renewal Complete",
                    "description": "Renewal process finished",
                    "type": "END",
                    "duration": None,
                    "position": {"x": 2350, "y": 200},
                    "metadata": {},
                },
            ],
            "connections": [
                {"sourceStepId": "step_0", "targetStepId": "step_1", "type": "DEFAULT"},
                {"sourceStepId": "step_1", "targetStepId": "step_2", "type": "DEFAULT"},
                {"sourceStepId": "step_2", "targetStepId": "step_3", "type": "DEFAULT"},
                {"sourceStepId": "step_3", "targetStepId": "step_4", "type": "DEFAULT"},
                {"sourceStepId": "step_4", "targetStepId": "step_5", "type": "DEFAULT"},
                {"sourceStepId": "step_5", "targetStepId": "step_6", "type": "DEFAULT"},
                {"sourceStepId": "step_6", "targetStepId": "step_7", "label": "Accepted", "type": "CONDITIONAL"},
                {"sourceStepId": "step_6", "targetStepId": "step_9", "label": "Declined", "type": "CONDITIONAL"},
                {"sourceStepId": "step_7", "targetStepId": "step_8", "type": "DEFAULT"},
                {"sourceStepId": "step_8", "targetStepId": "step_10", "type": "DEFAULT"},
                {"sourceStepId": "step_9", "targetStepId": "step_10", "type": "DEFAULT"},
            ],
        },
    },
]
