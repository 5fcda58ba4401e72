# tests/unit/test_binding.py
from clinic_intake.data.intake_flow import FIELD_BINDINGS
from clinic_intake.execution.binding import FieldBinding, FieldBindingTable


def test_field_for_is_a_pure_lookup():
    assert FIELD_BINDINGS.field_for("name") == "name"
    assert FIELD_BINDINGS.field_for("ingrown_followup") == "issue_specifics"
    assert FIELD_BINDINGS.field_for("welcome") is None


def test_bind_writes_raw_value():
    data = {}
    assert FIELD_BINDINGS.bind("email", "jane.doe@gmail.com", data) == "email"
    assert data == {"email": "jane.doe@gmail.com"}


def test_bind_applies_transforms():
    data = {}
    FIELD_BINDINGS.bind("issue_category", "fungal_followup", data)
    FIELD_BINDINGS.bind("upload_prompt", "image_upload", data)
    assert data == {"issue_category": "fungal", "has_image": True}

    FIELD_BINDINGS.bind("upload_prompt", "email", data)
    assert data["has_image"] is False


def test_unbound_step_leaves_data_untouched():
    data = {"name": "Jane"}
    assert FIELD_BINDINGS.bind("welcome", "", data) is None
    assert data == {"name": "Jane"}


def test_table_accepts_plain_names_and_bindings():
    table = FieldBindingTable({"a": "alpha", "b": FieldBinding("beta", str.upper)})
    assert set(table.step_ids()) == {"a", "b"}
    assert table.fields() == {"alpha", "beta"}
    data = {}
    table.bind("b", "x", data)
    assert data == {"beta": "X"}
