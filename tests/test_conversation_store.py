import json

from taskpilot.conversation import ConversationStore


def test_round_trip_and_clear(tmp_path):
    store = ConversationStore(tmp_path / ".taskpilot")
    assert store.get("developer_agent") is None
    store.save("developer_agent", "conv-1")
    store.save("qa_agent", "conv-2")
    assert store.get("developer_agent") == "conv-1"

    reopened = ConversationStore(tmp_path / ".taskpilot")
    assert reopened.get("qa_agent") == "conv-2"
    assert reopened.load().last_updated is not None

    reopened.clear("developer_agent")
    assert reopened.get("developer_agent") is None
    assert reopened.get("qa_agent") == "conv-2"
    reopened.clear_all()
    assert reopened.load().conversations == {}


def test_write_is_atomic_and_leaves_no_temp_file(tmp_path):
    store = ConversationStore(tmp_path)
    store.save("developer_agent", "conv-1")
    assert sorted(p.name for p in tmp_path.iterdir()) == ["workflow.json"]
    data = json.loads((tmp_path / "workflow.json").read_text(encoding="utf-8"))
    assert data["conversations"] == {"developer_agent": "conv-1"}


def test_corrupt_state_is_treated_as_empty(tmp_path):
    (tmp_path / "workflow.json").write_text("{broken", encoding="utf-8")
    store = ConversationStore(tmp_path)
    assert store.get("developer_agent") is None
    store.save("developer_agent", "conv-3")
    assert store.get("developer_agent") == "conv-3"


def test_wrongly_typed_state_is_treated_as_empty(tmp_path):
    (tmp_path / "workflow.json").write_text('{"conversations": ["a"]}', encoding="utf-8")
    assert ConversationStore(tmp_path).load().conversations == {}
