"""
Tests for the template catalog: visibility, ownership, updates and the
built-in seed templates.
"""

import pytest

from conftest import ORG_A, ORG_B, USER_A, make_template, step, connection, count_rows
from schemas.process_flow import Position, TemplateData
from schemas.process_management import ProcessTemplateUpdate
from services.errors import TemplateNotFoundError
from services.layout import Orientation, classify_orientation
from services.process_management_service import ProcessManagementService
from services.process_templates import get_builtin_templates


def private_template(name="Private", category=None):
    return make_template([step("a", 0, 0)], [], is_public=False, name=name, category=category)


class TestVisibility:
    @pytest.mark.asyncio
    async def test_public_and_own_private_templates_are_listed(self, service):
        public = await service.create_template(make_template([step("a", 0, 0)], [], name="Public"), ORG_A)
        own = await service.create_template(private_template("Own"), ORG_A)
        other = await service.create_template(private_template("Other"), ORG_B)

        listed = {t.id for t in await service.list_templates(ORG_A)}

        assert public.id in listed
        assert own.id in listed
        assert other.id not in listed

    @pytest.mark.asyncio
    async def test_filters(self, service):
        claims = await service.create_template(
            make_template([step("a", 0, 0)], [], name="Claims", category="claims"), ORG_A
        )
        await service.create_template(
            make_template([step("a", 0, 0)], [], name="Life", category="underwriting", industry_sector="life"), ORG_A
        )

        assert [t.id for t in await service.list_templates(ORG_A, category="claims")] == [claims.id]
        assert [t.name for t in await service.list_templates(ORG_A, industry_sector="life")] == ["Life"]

    @pytest.mark.asyncio
    async def test_categories_only_cover_visible_templates(self, service):
        await service.create_template(private_template("Mine", "claims"), ORG_A)
        await service.create_template(private_template("Theirs", "billing"), ORG_B)
        await service.create_template(make_template([step("a", 0, 0)], [], category="underwriting"), ORG_B)

        assert await service.get_template_categories(ORG_A) == ["claims", "underwriting"]

    @pytest.mark.asyncio
    async def test_get_private_template_of_other_org(self, service):
        template = await service.create_template(private_template(), ORG_A)

        assert (await service.get_template(template.id, ORG_A)).id == template.id
        with pytest.raises(TemplateNotFoundError):
            await service.get_template(template.id, ORG_B)


class TestOwnership:
    @pytest.mark.asyncio
    async def test_update_own_template(self, service):
        template = await service.create_template(private_template(), ORG_A)
        new_graph = TemplateData.model_validate({
            "steps": [step("x", 0, 0), step("y", 0, 100)],
            "connections": [connection("x", "y")],
        })

        updated = await service.update_template(
            template.id, ProcessTemplateUpdate(name="Renamed", template_data=new_graph), ORG_A
        )

        assert updated.name == "Renamed"
        assert [s.id for s in updated.template_data.steps] == ["x", "y"]
        assert updated.is_public is False

    @pytest.mark.asyncio
    async def test_empty_update_changes_nothing(self, service):
        template = await service.create_template(private_template(), ORG_A)

        updated = await service.update_template(template.id, ProcessTemplateUpdate(), ORG_A)

        assert updated.name == template.name
        assert updated.template_data == template.template_data

    @pytest.mark.asyncio
    async def test_cannot_update_other_org_template(self, service):
        template = await service.create_template(private_template(), ORG_A)

        with pytest.raises(TemplateNotFoundError):
            await service.update_template(template.id, ProcessTemplateUpdate(name="Hijacked"), ORG_B)

        assert (await service.get_template(template.id, ORG_A)).name == "Private"

    @pytest.mark.asyncio
    async def test_public_templates_are_not_owned(self, service):
        template = await service.create_template(make_template([step("a", 0, 0)], []), ORG_A)

        with pytest.raises(TemplateNotFoundError):
            await service.delete_template(template.id, ORG_A)

    @pytest.mark.asyncio
    async def test_delete_own_template(self, service):
        template = await service.create_template(private_template(), ORG_A)

        await service.delete_template(template.id, ORG_A)

        with pytest.raises(TemplateNotFoundError):
            await service.get_template(template.id, ORG_A)

    @pytest.mark.asyncio
    async def test_cannot_delete_other_org_template(self, service):
        template = await service.create_template(private_template(), ORG_A)

        with pytest.raises(TemplateNotFoundError):
            await service.delete_template(template.id, ORG_B)

        assert await count_rows(service, "process_templates") == 1

    @pytest.mark.asyncio
    async def test_deleting_template_keeps_its_processes(self, service):
        template = await service.create_template(private_template(), ORG_A)
        process = await service.create_process_from_template(template.id, None, ORG_A, USER_A)

        await service.delete_template(template.id, ORG_A)

        loaded = await service.get_process(process.id, ORG_A)
        assert len(loaded.steps) == 1


BUILTIN_NAMES = ["Auto Claims Processing", "Commercial Underwriting", "Policy Renewal Process"]


def builtin(name):
    return next(t for t in get_builtin_templates() if t.name == name)


class TestBuiltinTemplates:
    def test_library(self):
        templates = get_builtin_templates()

        assert [t.name for t in templates] == BUILTIN_NAMES
        assert [t.category for t in templates] == ["claims", "underwriting", "policy"]
        assert all(t.is_public and t.industry_sector == "insurance" for t in templates)

    @pytest.mark.parametrize("name", BUILTIN_NAMES)
    def test_drawn_horizontally(self, name):
        graph = builtin(name).template_data

        assert len(graph.steps) == 11
        assert len(graph.connections) == 11
        assert classify_orientation(s.position for s in graph.steps) == Orientation.HORIZONTAL

    def test_policy_renewal_steps(self):
        graph = builtin("Policy Renewal Process").template_data

        assert [s.name for s in graph.steps[:5]] == [
            "Renewal Date Approaching",
            "Review Policy Performance",
            "Re-Underwrite Risk",
            "Calculate Renewal Premium",
            "Generate Renewal Offer",
        ]
        assert (graph.steps[0].position.x, graph.steps[0].position.y) == (100, 200)
        assert (graph.steps[10].position.x, graph.steps[10].position.y) == (2350, 200)
        assert graph.steps[7].metadata == {
            "responsibleRole": "Billing Specialist",
            "department": "Billing",
            "requiredSystems": ["Payment Processing System"],
        }

    def test_commercial_underwriting_branches(self):
        graph = builtin("Commercial Underwriting").template_data

        decision = graph.steps[6]
        assert (decision.name, decision.type.value, decision.duration) == ("Quote Approved?", "DECISION", None)
        branches = [(c.target_step_id, c.label) for c in graph.connections if c.source_step_id == "step_6"]
        assert branches == [("step_7", "Accepted"), ("step_9", "Declined")]

    def test_builtin_connections_reference_existing_steps(self):
        for template in get_builtin_templates():
            step_ids = {s.id for s in template.template_data.steps}
            for c in template.template_data.connections:
                assert c.source_step_id in step_ids
                assert c.target_step_id in step_ids

    @pytest.mark.asyncio
    async def test_seeding_is_idempotent(self, tmp_path):
        database_path = str(tmp_path / "seeded.db")
        for _ in range(2):
            seeded = ProcessManagementService(database_path)
            await seeded.connect(seed_templates=True)
            try:
                templates = await seeded.list_templates(ORG_A)
            finally:
                await seeded.close()

        assert sorted(t.name for t in templates) == BUILTIN_NAMES
        assert all(t.is_public and t.organization_id is None for t in templates)

    @pytest.mark.asyncio
    async def test_seeding_adds_only_missing_templates(self, service):
        async with service.unit_of_work():
            await service.templates.create_template(builtin("Commercial Underwriting"), organization_id=None)
            added = await service.templates.seed_builtin_templates()

        assert added == 2
        names = sorted(t.name for t in await service.list_templates(ORG_A))
        assert names == BUILTIN_NAMES

    @pytest.mark.parametrize("name", BUILTIN_NAMES)
    @pytest.mark.asyncio
    async def test_instantiates_vertically(self, tmp_path, name):
        seeded = ProcessManagementService(str(tmp_path / "seeded.db"))
        await seeded.connect(seed_templates=True)
        try:
            template = next(t for t in await seeded.list_templates(ORG_A) if t.name == name)
            process = await seeded.create_process_from_template(template.id, None, ORG_A, USER_A)
        finally:
            await seeded.close()

        assert len(process.steps) == 11
        assert len(process.connections) == 11
        assert (process.steps[0].position_x, process.steps[0].position_y) == (200, 100)
        assert (process.steps[10].position_x, process.steps[10].position_y) == (200, 2350)
        rotated = [Position(x=s.position_x, y=s.position_y) for s in process.steps]
        assert classify_orientation(rotated) == Orientation.VERTICAL
