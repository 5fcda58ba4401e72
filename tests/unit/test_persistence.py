# tests/unit/test_persistence.py
import asyncio

import pytest

from clinic_intake.data.intake_flow import CREATE_FIELDS, MILESTONES
from clinic_intake.domain.models import Fixed, FlowDefinition, InputKind, SideEffect, StepSpec
from clinic_intake.execution.binding import FieldBindingTable
from clinic_intake.execution.persistence import ProgressivePersistence
from clinic_intake.state.models import SessionState, TranscriptEntry

IMAGE_BYTES = b"\x89PNG\r\n\x1a\nnot-really-a-png"


@pytest.mark.asyncio
async def test_create_fires_at_most_once(persistence, store):
    session = SessionState(session_id="s")

    first = await persistence.create(session, {"name": "Jane Doe"})
    second = await persistence.create(session, {"name": "Someone Else"})

    assert first == second == session.consultation_id
    assert store.creates == [{"name": "Jane Doe"}]


@pytest.mark.asyncio
async def test_milestones_patch_never_create(persistence, store):
    session = SessionState(session_id="s")
    await persistence.create(session, {"name": "Jane Doe"})

    assert await persistence.patch("contact", session, {"email": "jane.doe@gmail.com", "name": "Jane Doe"})

    assert len(store.creates) == 1
    assert store.patches == [(session.consultation_id, {"email": "jane.doe@gmail.com"})]


@pytest.mark.asyncio
async def test_patch_without_record_is_a_no_op(persistence, store):
    session = SessionState(session_id="s")

    assert await persistence.patch("triage", session, {"issue_category": "fungal"}) is False

    assert store.creates == []
    assert store.patches == []
    assert session.consultation_id is None


@pytest.mark.asyncio
async def test_patch_milestone_in_flow_before_create_is_skipped(make_runtime, store):
    flow = FlowDefinition.build(
        "patch_first",
        "ask",
        StepSpec(id="ask", message=Fixed("?"), input_kind=InputKind.SHORT_TEXT, next=Fixed("save")),
        StepSpec(
            id="save",
            message=Fixed("Saved"),
            next=Fixed("end"),
            side_effect=SideEffect.parse("persist-patch:triage"),
        ),
        StepSpec(id="end", is_terminal=True),
    )
    runtime = make_runtime(flow=flow, bindings=FieldBindingTable({"ask": "issue_category"}))
    await runtime.start()

    result = await runtime.submit_input("fungal")

    assert result.accepted
    assert runtime.session.ended
    assert store.creates == [] and store.patches == []


@pytest.mark.asyncio
async def test_store_failures_are_swallowed(failing_store):
    persistence = ProgressivePersistence(failing_store, MILESTONES, CREATE_FIELDS)
    session = SessionState(session_id="s")

    assert await persistence.create(session, {"name": "Jane Doe"}) is None
    assert session.consultation_id is None

    session.consultation_id = 7
    assert await persistence.patch("contact", session, {"phone": "0871234567"}) is False


@pytest.mark.asyncio
async def test_store_timeouts_are_bounded(store, mocker):
    async def hang(fields):
        await asyncio.sleep(5)

    mocker.patch.object(store, "create", side_effect=hang)
    persistence = ProgressivePersistence(store, MILESTONES, CREATE_FIELDS, timeout=0.05)

    assert await persistence.create(SessionState(session_id="s"), {"name": "Jane Doe"}) is None


def test_virtual_fields_come_from_the_session(persistence):
    session = SessionState(session_id="s", completed_steps=["welcome", "name"])
    session.append(TranscriptEntry(role="bot", content="What's your name?", step_id="name"))
    session.append(TranscriptEntry(role="user", content="Jane Doe", step_id="name"))

    payload = persistence.project(("name", "conversation_log", "completed_steps", "email"), session, {"name": "Jane Doe"})

    assert payload == {
        "name": "Jane Doe",
        "conversation_log": [{"step": "name", "response": "Jane Doe"}],
        "completed_steps": ["welcome", "name"],
    }


@pytest.mark.asyncio
async def test_contact_patch_reads_data_from_before_the_phone_answer(make_runtime, store):
    """
    The contact milestone fires on entering the phone step, so the phone
    number collected at that step only reaches the store with the final patch.
    """
    runtime = make_runtime()
    await runtime.start()
    await runtime.submit_input("Jane Doe")
    await runtime.select_option("other_followup")
    await runtime.submit_input("My big toenail has been sore for weeks")
    await runtime.select_option("yes")
    await runtime.submit_input("Salt water soaks and antibiotics")
    await runtime.select_option("email")
    await runtime.submit_input("jane.doe@gmail.com")
    await runtime.submit_input("+353 87 123 4567")

    assert runtime.session.data["phone"] == "+353 87 123 4567"
    patches = dict(_by_milestone(store.patches))
    assert patches["contact"] == {"email": "jane.doe@gmail.com"}
    assert "phone" not in patches["contact"]

    await runtime.select_option("no")
    await runtime.select_option("thanks")
    await runtime.select_option("good")

    final = store.patches[-1][1]
    assert final["phone"] == "+353 87 123 4567"
    assert final["symptom_description"] == "My big toenail has been sore for weeks"
    assert final["has_image"] is False
    assert final["completed_steps"][0] == "welcome"
    assert {"step": "phone", "response": "+353 87 123 4567"} in final["conversation_log"]


@pytest.mark.asyncio
async def test_full_walk_patches_each_milestone_once(make_runtime, store, forwarder):
    runtime = make_runtime()
    await runtime.start()
    await runtime.submit_input("Jane Doe")
    await runtime.select_option("fungal_followup")
    await runtime.select_option("thick")
    await runtime.select_option("no")
    await runtime.select_option("image_upload")
    await runtime.upload_image(IMAGE_BYTES, "image/png")
    await runtime.submit_input("")
    await runtime.submit_input("0871234567")
    await runtime.select_option("no")
    await runtime.select_option("thanks")
    await runtime.select_option("okay")

    assert runtime.session.ended
    assert store.creates == [{"name": "Jane Doe"}]
    assert [name for name, _ in _by_milestone(store.patches)] == [
        "triage", "treatment", "image", "contact", "callback", "final",
    ]

    triage = store.patches[0][1]
    assert triage == {"issue_category": "fungal", "issue_specifics": "thick"}

    image = store.patches[2][1]
    assert image["has_image"] is True
    assert image["image_path"].startswith("data:image/png;base64,")
    assert image["image_analysis"]["condition"] == "Ingrown toenail"

    # The finished record is forwarded with the image as a separate payload
    fields, image_payload = forwarder.calls[0]
    assert fields["consultation_id"] == runtime.session.consultation_id
    assert "image_path" not in fields
    assert image_payload.startswith("data:image/png;base64,")

    record = await store.get(runtime.session.consultation_id)
    assert record["source"] == "nailsurgery"
    assert record["email"] == ""
    assert record["emoji_survey"] == "okay"


def _by_milestone(patches):
    """Labels each recorded patch with the milestone whose field set it matches."""
    labelled = []
    for _, fields in patches:
        name = next(
            name for name, milestone_fields in MILESTONES.items()
            if set(fields) <= set(milestone_fields) and (name == "final") == ("completed_steps" in fields)
        )
        labelled.append((name, fields))
    return labelled
