import json
import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from financebuddy.graph.agents import AgentNotFoundError, AgentRegistry
from financebuddy.services.chat import ChatDispatcher, ConversationBusyError
from financebuddy.services.conversations import ConversationManager, ConversationNotFoundError
from financebuddy.services.messaging import MessagingDispatcher
from financebuddy.services.scheduler import DigestScheduler

logger = logging.getLogger(__name__)

router = APIRouter()


def _registry(request: Request) -> AgentRegistry:
    return request.app.state.registry


def _manager(request: Request) -> ConversationManager:
    return request.app.state.conversations


def _chat(request: Request) -> ChatDispatcher:
    return request.app.state.chat


def _messaging(request: Request) -> MessagingDispatcher:
    return request.app.state.messaging


def _scheduler(request: Request) -> DigestScheduler:
    return request.app.state.scheduler


# ===========================================================================
# AGENT ROUTES
# ===========================================================================

@router.get("/agents")
async def list_agents(request: Request):
    return {"agents": _registry(request).list_agents()}


@router.get("/agents/suggestions")
async def agent_suggestions(request: Request):
    return {"suggestions": _registry(request).suggestions()}


class AgentToggleRequest(BaseModel):
    enabled: bool


@router.patch("/agents/{agent_id}")
async def toggle_agent(agent_id: str, body: AgentToggleRequest, request: Request):
    try:
        return _registry(request).set_enabled(agent_id, body.enabled)
    except AgentNotFoundError:
        raise HTTPException(status_code=404, detail="Agent not found")


# ===========================================================================
# CONVERSATION ROUTES
# ===========================================================================

@router.post("/chat/conversations")
async def create_conversation(request: Request):
    manager = _manager(request)
    conversation_id = await manager.create_conversation()
    return manager.get(conversation_id)


@router.get("/chat/conversations")
async def list_conversations(request: Request):
    manager = _manager(request)
    return {
        "active_conversation_id": manager.active_conversation_id,
        "conversations": manager.list_conversations(),
    }


@router.get("/chat/conversations/active")
async def active_conversation(request: Request):
    return _manager(request).active_conversation


@router.delete("/chat/conversations/active/messages")
async def clear_active_conversation(request: Request):
    """Reset the active conversation to a fresh greeting without archiving it."""
    return _manager(request).clear_active()


@router.get("/chat/conversations/{conversation_id}")
async def load_conversation(conversation_id: str, request: Request):
    try:
        return await _manager(request).load_conversation(conversation_id)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")


@router.get("/chat/conversations/{conversation_id}/summary")
async def conversation_summary(conversation_id: str, request: Request):
    try:
        return _manager(request).summarize(conversation_id)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")


@router.delete("/chat/conversations/{conversation_id}")
async def delete_conversation(conversation_id: str, request: Request):
    manager = _manager(request)
    try:
        await manager.delete_conversation(conversation_id)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"deleted": True, "active_conversation_id": manager.active_conversation_id}


# ===========================================================================
# CHAT ROUTES
# ===========================================================================

class ChatMessageRequest(BaseModel):
    message: str
    conversation_id: str | None = None


@router.post("/chat/message")
async def chat_message(body: ChatMessageRequest, request: Request):
    try:
        reply, trace = await _chat(request).dispatch_chat(body.message, body.conversation_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    except ConversationBusyError:
        raise HTTPException(status_code=409, detail="A message is already being processed")
    return {"message": reply, "routing_trace": trace}


@router.post("/chat/message/stream")
async def chat_message_stream(body: ChatMessageRequest, request: Request):
    """
    Stream a chat turn via SSE.

    SSE event sequence:
      routing (one per trace step) → response → done
    """
    chat = _chat(request)
    conversation_id = body.conversation_id or _manager(request).active_conversation_id
    if not body.message.strip():
        raise HTTPException(status_code=400, detail="Message must not be empty")
    if chat.is_busy(conversation_id):
        raise HTTPException(status_code=409, detail="A message is already being processed")
    try:
        _manager(request).get(conversation_id)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")

    async def generate():
        try:
            reply, trace = await chat.dispatch_chat(body.message, conversation_id)
            for step in trace:
                yield {"event": "routing", "data": json.dumps(step)}
            yield {"event": "response", "data": json.dumps(reply)}
            yield {"event": "done", "data": json.dumps({"conversation_id": conversation_id})}
        except Exception as exc:
            logger.error("Chat stream generator failed: %s", exc)
            yield {"event": "error", "data": json.dumps({"message": str(exc)})}

    return EventSourceResponse(generate())


# ===========================================================================
# MESSAGING ROUTES
# ===========================================================================

@router.post("/webhook/whatsapp")
async def whatsapp_webhook(payload: dict, request: Request):
    return await _messaging(request).handle_webhook(payload)


class ChannelMessageRequest(BaseModel):
    sender_id: str
    text: str


@router.post("/messaging/dispatch")
async def messaging_dispatch(body: ChannelMessageRequest, request: Request):
    return _messaging(request).dispatch_channel_message(body.text, body.sender_id)


@router.post("/messaging/digest")
async def messaging_digest(request: Request):
    return await _scheduler(request).run_once()
