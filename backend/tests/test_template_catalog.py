import pytest

from app.core.context import ScheduleContext
from app.core.exceptions import ResourceNotFoundError, ValidationError
from app.schemas.period_template import BreakSlot, PeriodTemplateUpdate, TeachingSlot
from app.services.template_catalog import PeriodTemplateCatalog, validate_layout


def test_create_template_normalizes_active_days(db, ctx, template_payload):
    catalog = PeriodTemplateCatalog(db)
    template = catalog.create_template(ctx, template_payload(name="  Short week ", active_days=[3, 1, 1]))

    assert template.name == "Short week"
    assert template.active_days == [1, 3]
    assert template.version == 1
    layout = template.layout()
    assert [slot.start_time for slot in layout] == sorted(slot.start_time for slot in layout)
    assert len(template.teaching_slots()) == 8
    assert sum(isinstance(slot, BreakSlot) for slot in layout) == 2


def test_break_slots_round_trip_with_names(db, ctx, template_payload):
    template = PeriodTemplateCatalog(db).create_template(ctx, template_payload())

    breaks = [slot for slot in template.layout() if isinstance(slot, BreakSlot)]
    assert [(slot.name, slot.start_time) for slot in breaks] == [("Recess", "10:15"), ("Lunch", "12:00")]


@pytest.mark.parametrize(
    ("slots", "reason"),
    [
        ([TeachingSlot(period_number=1, start_time="09:00", end_time="09:00")], "end_not_after_start"),
        ([TeachingSlot(period_number=0, start_time="09:00", end_time="09:45")], "invalid_period_number"),
        (
            [
                TeachingSlot(period_number=1, start_time="09:00", end_time="09:45"),
                TeachingSlot(period_number=1, start_time="10:00", end_time="10:45"),
            ],
            "duplicate_period_number",
        ),
        (
            [
                TeachingSlot(period_number=1, start_time="09:00", end_time="09:45"),
                BreakSlot(name="Recess", start_time="09:30", end_time="09:50"),
            ],
            "overlapping_slots",
        ),
    ],
)
def test_validate_layout_rejects_bad_slots(slots, reason):
    with pytest.raises(ValidationError) as exc_info:
        validate_layout(slots, [1, 2, 3])

    assert exc_info.value.details["reason"] == reason
    assert exc_info.value.code == "VALIDATION"


def test_overlap_names_offending_slot_index():
    slots = [
        TeachingSlot(period_number=2, start_time="10:00", end_time="10:45"),
        TeachingSlot(period_number=1, start_time="09:00", end_time="10:15"),
    ]
    with pytest.raises(ValidationError) as exc_info:
        validate_layout(slots, [1])

    assert exc_info.value.details["slot_index"] == 0
    assert exc_info.value.details["overlaps_slot_index"] == 1


def test_adjacent_slots_are_valid():
    days = validate_layout(
        [
            TeachingSlot(period_number=1, start_time="09:00", end_time="09:45"),
            BreakSlot(start_time="09:45", end_time="10:00"),
            TeachingSlot(period_number=2, start_time="10:00", end_time="10:45"),
        ],
        [2, 1],
    )
    assert days == [1, 2]


@pytest.mark.parametrize("active_days", [[], [0], [7], [1, 8]])
def test_invalid_active_days_rejected(db, ctx, template_payload, active_days):
    with pytest.raises(ValidationError):
        PeriodTemplateCatalog(db).create_template(ctx, template_payload(active_days=active_days))


def test_only_one_default_template_per_organization(db, ctx, template_payload):
    catalog = PeriodTemplateCatalog(db)
    first = catalog.create_template(ctx, template_payload(name="First"))
    second = catalog.create_template(ctx, template_payload(name="Second"))

    db.refresh(first)
    assert first.is_default is False
    assert second.is_default is True
    assert catalog.get_default_template(ctx).id == second.id

    catalog.update_template(ctx, first.id, PeriodTemplateUpdate(is_default=True))
    db.refresh(second)
    assert catalog.get_default_template(ctx).id == first.id
    assert second.is_default is False


def test_default_flag_is_scoped_to_organization(db, ctx, template_payload):
    catalog = PeriodTemplateCatalog(db)
    ours = catalog.create_template(ctx, template_payload(name="Ours"))
    other_ctx = ScheduleContext(organization_id="org-2", actor_id="someone")
    theirs = catalog.create_template(other_ctx, template_payload(name="Theirs"))

    assert catalog.get_default_template(ctx).id == ours.id
    assert catalog.get_default_template(other_ctx).id == theirs.id


def test_update_bumps_version_and_replaces_slots(db, ctx, template_payload):
    catalog = PeriodTemplateCatalog(db)
    template = catalog.create_template(ctx, template_payload())

    updated = catalog.update_template(
        ctx,
        template.id,
        PeriodTemplateUpdate(
            slots=[
                TeachingSlot(period_number=1, start_time="09:00", end_time="10:00"),
                TeachingSlot(period_number=2, start_time="10:00", end_time="11:00"),
            ]
        ),
    )

    assert updated.version == 2
    assert [slot.period_number for slot in updated.teaching_slots()] == [1, 2]
    assert updated.active_days == template.active_days


def test_update_validates_against_existing_layout(db, ctx, template_payload):
    catalog = PeriodTemplateCatalog(db)
    template = catalog.create_template(ctx, template_payload())

    with pytest.raises(ValidationError):
        catalog.update_template(ctx, template.id, PeriodTemplateUpdate(active_days=[9]))

    db.refresh(template)
    assert template.version == 1


def test_templates_are_invisible_across_organizations(db, ctx, template_payload):
    catalog = PeriodTemplateCatalog(db)
    template = catalog.create_template(ctx, template_payload())
    other_ctx = ScheduleContext(organization_id="org-2")

    with pytest.raises(ResourceNotFoundError):
        catalog.get_template(other_ctx, template.id)
    assert catalog.find_template(other_ctx, template.id) is None
    assert catalog.list_templates(other_ctx) == []
    assert [item.id for item in catalog.list_templates(ctx)] == [template.id]
