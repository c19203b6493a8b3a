from __future__ import annotations

import asyncio

from aiohttp import web
from aiohttp.test_utils import TestServer
import pytest

from chat_sync.core.errors import RestError
from chat_sync.schemas.messages import OutgoingAttachment, OutgoingMessage
from chat_sync.services.chat_api import ChatApi


def _conversation_payload(conversation_id: str) -> dict[str, object]:
    return {
        "id": conversation_id,
        "otherUser": {"id": "bob", "firstName": "Bob", "lastName": "Lens"},
        "lastMessage": {"id": "m-1", "sender": {"id": "bob"}, "content": "hi", "createdAt": "2024-05-01T12:00:00Z"},
        "lastMessageAt": "2024-05-01T12:00:00Z",
        "unreadCount": 2,
    }


def _build_app(received: dict[str, object]) -> web.Application:
    async def list_conversations(request: web.Request) -> web.Response:
        received["authorization"] = request.headers.get("Authorization")
        return web.json_response({"conversations": [_conversation_payload("c-1")]})

    async def list_messages(request: web.Request) -> web.Response:
        received["page"] = request.query.get("page")
        if request.match_info["conversation_id"] == "missing":
            return web.json_response(
                {"error": {"code": "conversation_not_found", "message": "Conversation not found"}},
                status=404,
            )
        return web.json_response(
            {
                "messages": [
                    {
                        "id": "m-1",
                        "conversationId": "c-1",
                        "sender": {"id": "bob"},
                        "content": "hi",
                        "createdAt": "2024-05-01T12:00:00Z",
                    }
                ],
                "hasMore": True,
            }
        )

    async def send_message(request: web.Request) -> web.Response:
        form = await request.post()
        upload = form.get("file")
        received["form"] = {key: value for key, value in form.items() if key != "file"}
        received["file_name"] = getattr(upload, "filename", None)
        if form.get("receiverId") == "blocked":
            return web.json_response({"message": "Receiver not found"}, status=400)
        return web.json_response(
            {
                "data": {
                    "id": "m-9",
                    "conversationId": "c-1",
                    "sender": {"id": "alice"},
                    "content": form.get("content"),
                    "replyToId": form.get("replyToId"),
                    "createdAt": "2024-05-01T12:30:00Z",
                }
            },
            status=201,
        )

    async def mark_read(request: web.Request) -> web.Response:
        received["read"] = request.match_info["conversation_id"]
        return web.Response(status=204)

    async def start_conversation(request: web.Request) -> web.Response:
        body = await request.json()
        received["start"] = body
        return web.json_response({"conversation": _conversation_payload("c-2")})

    async def search_users(request: web.Request) -> web.Response:
        received["q"] = request.query.get("q")
        return web.json_response({"users": [{"id": "bob", "firstName": "Bob"}]})

    app = web.Application()
    app.router.add_get("/api/messages/conversations", list_conversations)
    app.router.add_get("/api/messages/conversations/{conversation_id}", list_messages)
    app.router.add_post("/api/messages/send", send_message)
    app.router.add_patch("/api/messages/conversations/{conversation_id}/read", mark_read)
    app.router.add_post("/api/messages/conversations/start", start_conversation)
    app.router.add_get("/api/users/search", search_users)
    return app


async def _with_api(scenario, received: dict[str, object]):
    server = TestServer(_build_app(received))
    await server.start_server()
    api = ChatApi(base_url=str(server.make_url("/api")))
    api.set_token("token-123")
    try:
        return await scenario(api)
    finally:
        await api.close()
        await server.close()


def test_conversation_and_message_reads():
    received: dict[str, object] = {}

    async def scenario(api: ChatApi):
        conversations = await api.list_conversations()
        page = await api.list_messages("c-1", page=2)
        return conversations, page

    conversations, page = asyncio.run(_with_api(scenario, received))

    assert received["authorization"] == "Bearer token-123"
    assert received["page"] == "2"
    assert conversations[0].other_participant.display_name == "Bob Lens"
    assert conversations[0].unread_count == 2
    assert page.has_more is True
    assert page.messages[0].id == "m-1"


def test_send_posts_multipart_form():
    received: dict[str, object] = {}
    draft = OutgoingMessage(
        receiver_id="bob",
        content="Rates attached",
        attachment=OutgoingAttachment(file_name="rates.pdf", data=b"%PDF-1.4", content_type="application/pdf"),
        reply_to_id="m-1",
    )

    message = asyncio.run(_with_api(lambda api: api.send_message(draft), received))

    assert received["form"] == {"receiverId": "bob", "content": "Rates attached", "replyToId": "m-1"}
    assert received["file_name"] == "rates.pdf"
    assert message.id == "m-9"
    assert message.reply_to_id == "m-1"


def test_read_start_and_search():
    received: dict[str, object] = {}

    async def scenario(api: ChatApi):
        await api.mark_conversation_read("c-1")
        conversation = await api.start_conversation("bob")
        users = await api.search_users("bo")
        return conversation, users

    conversation, users = asyncio.run(_with_api(scenario, received))

    assert received["read"] == "c-1"
    assert received["start"] == {"userId": "bob"}
    assert received["q"] == "bo"
    assert conversation.id == "c-2"
    assert [user.id for user in users] == ["bob"]


def test_error_payloads_map_to_rest_error():
    received: dict[str, object] = {}

    async def missing(api: ChatApi):
        await api.list_messages("missing")

    with pytest.raises(RestError) as exc_info:
        asyncio.run(_with_api(missing, received))
    assert exc_info.value.status_code == 404
    assert exc_info.value.code == "conversation_not_found"

    async def blocked(api: ChatApi):
        await api.send_message(OutgoingMessage(receiver_id="blocked", content="hi"))

    with pytest.raises(RestError) as exc_info:
        asyncio.run(_with_api(blocked, received))
    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "Receiver not found"


def test_unreachable_server_maps_to_network_error():
    async def scenario():
        server = TestServer(web.Application())
        await server.start_server()
        base_url = str(server.make_url("/api"))
        await server.close()

        api = ChatApi(base_url=base_url, timeout_sec=2.0)
        try:
            await api.list_conversations()
        finally:
            await api.close()

    with pytest.raises(RestError) as exc_info:
        asyncio.run(scenario())
    assert exc_info.value.code == "network_error"
    assert exc_info.value.status_code is None
