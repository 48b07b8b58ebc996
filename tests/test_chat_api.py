from langchain_core.messages import SystemMessage

from main import app
from models import Message, MessageRole
from schemas import Identity
from tests.helpers import parse_sse


def new_thread(client):
    return client.post("/threads", json={}).json()


def chat(client, thread_id, message, **extra):
    response = client.post("/chat", json={"thread_id": thread_id, "message": message, **extra})
    return response, parse_sse(response.text) if response.status_code == 200 else None


def stored(db, thread_id, role):
    db.expire_all()
    return [
        message for message in db.query(Message).order_by(Message.created_at).all()
        if str(message.thread_id) == thread_id and message.role == role
    ]


def test_reply_streams_and_is_persisted(client, db):
    thread = new_thread(client)

    response, events = chat(client, thread["id"], "say hello")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert events[-1] == "[DONE]"
    assert "".join(event["content"] for event in events[:-1]) == "Hello world"

    replies = stored(db, thread["id"], MessageRole.ASSISTANT)
    assert [reply.content for reply in replies] == ["Hello world"]
    assert [m.content for m in stored(db, thread["id"], MessageRole.USER)] == ["say hello"]


def test_no_response_sentinel(client, db, chat_model):
    chat_model.chunks = ["[NO", "_RESPONSE]"]
    thread = new_thread(client)

    response, events = chat(client, thread["id"], "Bob, did you book it?")

    assert events == [{"no_response": True}, "[DONE]"]
    assert stored(db, thread["id"], MessageRole.ASSISTANT) == []
    assert len(stored(db, thread["id"], MessageRole.USER)) == 1


def test_provider_failure_is_in_band(client, db, chat_model):
    chat_model.chunks = ["Half an ans"]
    chat_model.error = RuntimeError("upstream closed")
    thread = new_thread(client)

    response, events = chat(client, thread["id"], "explain")

    assert response.status_code == 200
    assert events[0] == {"content": "Half an ans"}
    assert events[1]["details"] == "upstream closed"
    assert events[-1] == "[DONE]"
    assert stored(db, thread["id"], MessageRole.ASSISTANT) == []


def test_empty_completion_writes_nothing(client, db, chat_model):
    chat_model.chunks = []
    thread = new_thread(client)

    response, events = chat(client, thread["id"], "hm")

    assert events == ["[DONE]"]
    assert stored(db, thread["id"], MessageRole.ASSISTANT) == []


def test_prompt_carries_history_and_new_message(client, chat_model, identity):
    thread = new_thread(client)
    client.post(f"/threads/{thread['id']}/messages", json={"content": "I'm in for Friday"})
    identity["current"] = Identity(user_id="user-bob", display_name="Bob")

    chat(client, thread["id"], "Sol, what's the forecast?")

    messages = chat_model.calls[0]
    assert isinstance(messages[0], SystemMessage)
    assert "The people in this conversation are: Alice, Bob." in messages[0].content
    assert [m.content for m in messages[1:]] == ["I'm in for Friday", "Sol, what's the forecast?"]


def test_already_persisted_message_is_not_duplicated(client, db, chat_model):
    thread = new_thread(client)
    posted = client.post(f"/threads/{thread['id']}/messages", json={"content": "question"}).json()

    chat(client, thread["id"], "question", message_id=posted["id"])

    messages = chat_model.calls[0]
    assert [m.content for m in messages[1:]] == ["question"]
    assert len(stored(db, thread["id"], MessageRole.USER)) == 1


def test_first_chat_message_titles_thread(client):
    thread = new_thread(client)

    chat(client, thread["id"], "Plan the reunion")

    assert client.get(f"/threads/{thread['id']}").json()["title"] == "Plan the reunion"


def test_assistant_message_interpretation_is_split(client, chat_model):
    chat_model.chunks = ["[INTERPRETATION: a poll] ", "Tacos."]
    thread = new_thread(client)

    chat(client, thread["id"], "what should we eat?")

    reply = client.get(f"/threads/{thread['id']}/messages").json()[-1]
    assert reply["role"] == "assistant"
    assert reply["interpretation"] == "a poll"
    assert reply["body"] == "Tacos."


def test_missing_fields_are_rejected(client):
    thread = new_thread(client)

    assert client.post("/chat", json={"thread_id": thread["id"], "message": "  "}).status_code == 422
    assert client.post("/chat", json={"thread_id": "", "message": "hi"}).status_code == 422
    assert client.post("/chat", json={"message": "hi"}).status_code == 422


def test_unknown_thread(client):
    response, _ = chat(client, "not-a-uuid", "hi")
    assert response.status_code == 404

    response, _ = chat(client, "00000000-0000-0000-0000-000000000000", "hi")
    assert response.status_code == 404


def test_user_id_must_match_identity(client):
    thread = new_thread(client)

    response, _ = chat(client, thread["id"], "hi", user_id="someone-else")

    assert response.status_code == 403


def test_provider_not_configured(client):
    thread = new_thread(client)
    app.state.reply_runner = None

    response, _ = chat(client, thread["id"], "hi")

    assert response.status_code == 503


def test_history_failure_before_stream(client, monkeypatch):
    from services.context import ContextService, ContextUnavailableError

    def broken(*args, **kwargs):
        raise ContextUnavailableError("down")

    monkeypatch.setattr(ContextService, "load_history", broken)
    thread = new_thread(client)

    response, _ = chat(client, thread["id"], "hi")

    assert response.status_code == 500


def test_chat_message_is_stored_and_prompted_trimmed(client, db, chat_model):
    thread = new_thread(client)

    chat(client, thread["id"], "  \n Plan the reunion \n")

    assert [m.content for m in stored(db, thread["id"], MessageRole.USER)] == ["Plan the reunion"]
    assert chat_model.calls[-1][-1].content == "Plan the reunion"
    assert client.get(f"/threads/{thread['id']}").json()["title"] == "Plan the reunion"
