"""Utilities for bridging the live chat channel over WebSockets."""
from __future__ import annotations

import json
from contextlib import suppress
from typing import Any

import anyio
from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState

from .errors import ServerError
from .relay import RelayDispatcher, Subscription


async def send_websocket_json(websocket: WebSocket, payload: dict[str, Any]) -> None:
    """Safely send a JSON payload to a websocket client."""

    if websocket.client_state == WebSocketState.DISCONNECTED:
        return
    with suppress(Exception):
        await websocket.send_json(payload)


def _parse_frame(text: str) -> dict[str, Any] | None:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None
    return payload


async def stream_chat(
    websocket: WebSocket,
    dispatcher: RelayDispatcher,
    subscription: Subscription,
    *,
    handle: str,
) -> None:
    """Pump inbox messages to the client and client frames into the relay.

    Inbound frames are ``{"recipient": ..., "content": ...}`` and are always
    sent as ``handle``. Frames that are not JSON objects, or that the relay
    rejects as malformed, are dropped without a reply. Store failures are
    reported back as an ``error`` frame.
    """

    async def pump_inbox_to_websocket(task_group) -> None:
        try:
            while True:
                message = await subscription.next_message()
                try:
                    await websocket.send_json({"type": "message", "message": message.to_payload()})
                except Exception:
                    break
        finally:
            task_group.cancel_scope.cancel()

    async def pump_websocket_to_relay(task_group) -> None:
        try:
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    break
                text = frame.get("text")
                if text is None:
                    continue
                payload = _parse_frame(text)
                if payload is None:
                    continue
                if payload.get("type") == "close":
                    break
                recipient = payload.get("recipient")
                content = payload.get("content")
                if not isinstance(recipient, str) or not isinstance(content, str):
                    continue
                try:
                    await dispatcher.submit(handle, recipient, content)
                except ServerError as exc:
                    await send_websocket_json(websocket, {"type": "error", "message": exc.message})
        except WebSocketDisconnect:
            pass
        finally:
            task_group.cancel_scope.cancel()

    async with anyio.create_task_group() as task_group:
        task_group.start_soon(pump_inbox_to_websocket, task_group)
        task_group.start_soon(pump_websocket_to_relay, task_group)


__all__ = ["send_websocket_json", "stream_chat"]
