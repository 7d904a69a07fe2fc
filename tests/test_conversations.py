import asyncio
import datetime

import pytest

from financebuddy.services.conversations import (
    DEFAULT_TITLE,
    ConversationManager,
    ConversationNotFoundError,
    derive_title,
)


def _msg(content, sender="user", **extra):
    return {
        "id": f"{sender}-{content[:8]}",
        "content": content,
        "sender": sender,
        "timestamp": datetime.datetime.utcnow().isoformat(),
        **extra,
    }


def test_fresh_conversation_has_greeting(store, profiles):
    manager = ConversationManager(store, profiles)
    active = manager.active_conversation
    assert active["title"] == DEFAULT_TITLE
    assert len(active["messages"]) == 1
    assert active["messages"][0]["sender"] == "agent"
    assert active["messages"][0]["content"].startswith("Hi Ana!")
    assert active["id"].startswith("conv-")


def test_derive_title():
    long_text = "x" * 80
    assert derive_title([_msg("hello", "agent"), _msg(long_text)]) == "x" * 50 + "…"
    assert derive_title([_msg("y" * 30)]) == "y" * 30
    assert derive_title([_msg("hello", "agent")]) == DEFAULT_TITLE


def test_greeting_only_conversation_is_not_archived(store, profiles):
    manager = ConversationManager(store, profiles)
    first_id = manager.active_conversation_id

    new_id = asyncio.run(manager.create_conversation())

    assert new_id != first_id
    assert manager.list_conversations() == []
    assert store.saves == []


def test_conversation_with_messages_is_archived_with_title(store, profiles):
    manager = ConversationManager(store, profiles)
    first_id = manager.active_conversation_id

    async def scenario():
        await manager.append_message(first_id, _msg("z" * 80))
        return await manager.create_conversation()

    asyncio.run(scenario())

    listed = manager.list_conversations()
    assert [c["id"] for c in listed] == [first_id]
    assert listed[0]["title"] == "z" * 50 + "…"
    assert listed[0]["message_count"] == 2
    assert store.rows[first_id]["title"] == "z" * 50 + "…"


def test_list_is_sorted_by_last_activity(store, profiles):
    manager = ConversationManager(store, profiles)

    async def scenario():
        ids = []
        for text in ("first question", "second question"):
            ids.append(manager.active_conversation_id)
            await manager.append_message(manager.active_conversation_id, _msg(text))
            await manager.create_conversation()
        return ids

    first, second = asyncio.run(scenario())
    assert [c["id"] for c in manager.list_conversations()] == [second, first]


def test_load_archived_conversation_archives_current(store, profiles):
    manager = ConversationManager(store, profiles)
    first_id = manager.active_conversation_id

    async def scenario():
        await manager.append_message(first_id, _msg("about my budget"))
        second_id = await manager.create_conversation()
        await manager.append_message(second_id, _msg("about my goals"))
        loaded = await manager.load_conversation(first_id)
        return second_id, loaded

    second_id, loaded = asyncio.run(scenario())
    assert loaded["id"] == first_id
    assert manager.active_conversation_id == first_id
    assert second_id in {c["id"] for c in manager.list_conversations()}


def test_load_from_store_when_not_in_memory(store, profiles):
    stored = {
        "id": "conv-stored",
        "title": "Old chat",
        "messages": [_msg("hi", "agent"), _msg("old question")],
        "created_at": "2024-01-01T00:00:00",
        "last_activity": "2024-01-01T00:05:00",
    }
    store.rows["conv-stored"] = stored
    manager = ConversationManager(store, profiles)

    loaded = asyncio.run(manager.load_conversation("conv-stored"))
    assert loaded["title"] == "Old chat"
    assert manager.active_conversation_id == "conv-stored"


def test_load_unknown_conversation(store, profiles):
    manager = ConversationManager(store, profiles)
    with pytest.raises(ConversationNotFoundError):
        asyncio.run(manager.load_conversation("conv-missing"))


def test_delete_archived_conversation(store, profiles):
    manager = ConversationManager(store, profiles)
    first_id = manager.active_conversation_id

    async def scenario():
        await manager.append_message(first_id, _msg("delete me"))
        await manager.create_conversation()
        await manager.delete_conversation(first_id)

    asyncio.run(scenario())
    assert manager.list_conversations() == []
    assert first_id not in store.rows
    assert store.deletes == [first_id]


def test_delete_active_conversation_starts_a_fresh_one(store, profiles):
    manager = ConversationManager(store, profiles)
    first_id = manager.active_conversation_id

    async def scenario():
        await manager.append_message(first_id, _msg("delete me"))
        await manager.delete_conversation(first_id)

    asyncio.run(scenario())
    assert manager.active_conversation_id != first_id
    # the deleted conversation is not archived again
    assert manager.list_conversations() == []
    assert first_id not in store.rows


def test_delete_unknown_conversation(store, profiles):
    manager = ConversationManager(store, profiles)
    with pytest.raises(ConversationNotFoundError):
        asyncio.run(manager.delete_conversation("conv-missing"))


def test_storage_failure_keeps_memory_state(broken_store, profiles):
    manager = ConversationManager(broken_store, profiles)
    first_id = manager.active_conversation_id

    async def scenario():
        await manager.append_message(first_id, _msg("still here"))
        await manager.create_conversation()

    asyncio.run(scenario())
    assert [c["id"] for c in manager.list_conversations()] == [first_id]
    assert manager.get(first_id)["messages"][-1]["content"] == "still here"


def test_callers_get_copies(store, profiles):
    manager = ConversationManager(store, profiles)
    snapshot = manager.active_conversation
    snapshot["messages"].append(_msg("sneaky"))
    assert len(manager.active_conversation["messages"]) == 1


def test_append_to_unknown_conversation(store, profiles):
    manager = ConversationManager(store, profiles)
    with pytest.raises(ConversationNotFoundError):
        asyncio.run(manager.append_message("conv-missing", _msg("hi")))


def test_clear_active(store, profiles):
    manager = ConversationManager(store, profiles)
    conv_id = manager.active_conversation_id
    asyncio.run(manager.append_message(conv_id, _msg("something")))

    cleared = manager.clear_active()
    assert cleared["id"] != conv_id
    assert manager.active_conversation_id == cleared["id"]
    assert len(cleared["messages"]) == 1
    assert manager.list_conversations() == []


def test_clear_after_load_keeps_the_archived_history(store, profiles):
    manager = ConversationManager(store, profiles)
    first_id = manager.active_conversation_id

    async def scenario():
        await manager.append_message(first_id, _msg("about my budget"))
        await manager.create_conversation()
        await manager.load_conversation(first_id)

    asyncio.run(scenario())
    cleared = manager.clear_active()

    assert cleared["id"] != first_id
    archived = {c["id"]: c for c in manager.list_conversations()}
    assert archived[first_id]["message_count"] == 2
    assert archived[first_id]["title"] == "about my budget"
    assert store.rows[first_id]["messages"][-1]["content"] == "about my budget"



def test_summarize(store, profiles):
    manager = ConversationManager(store, profiles)
    conv_id = manager.active_conversation_id

    async def scenario():
        await manager.append_message(conv_id, _msg("invest?"))
        await manager.append_message(conv_id, _msg("answer", "agent", intent="investment_advice"))
        await manager.append_message(conv_id, _msg("and goals?"))
        await manager.append_message(conv_id, _msg("answer 2", "agent", intent="goal_tracking"))
        await manager.append_message(conv_id, _msg("answer 3", "agent", intent="investment_advice"))

    asyncio.run(scenario())
    summary = manager.summarize(conv_id)
    assert summary["total_messages"] == 6
    assert summary["user_messages"] == 2
    assert summary["agent_messages"] == 4
    assert summary["top_intents"] == ["investment_advice", "goal_tracking"]
    assert summary["duration_seconds"] >= 0
