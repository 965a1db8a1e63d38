"""Chat Protocol shared by the vibecore agents.

Both agents answer free-text chat so they can be discovered and queried
from ASI:One; structured work goes through their typed message handlers.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from uagents import Context, Protocol
from uagents_core.contrib.protocols.chat import (
    ChatAcknowledgement,
    ChatMessage,
    EndSessionContent,
    TextContent,
)

logger = logging.getLogger(__name__)

ChatHandler = Callable[[Context, str, str], Awaitable[str]]


def chat_text(msg: ChatMessage) -> str:
    """Concatenated text of every TextContent block."""
    return " ".join(item.text for item in msg.content if isinstance(item, TextContent)).strip()


def describe(agent_name: str, description: str) -> str:
    return f"I'm the {agent_name}. {description}."


def create_chat_protocol(
    agent_name: str,
    description: str,
    handler_fn: Optional[ChatHandler] = None,
) -> Protocol:
    """Chat Protocol that acks, answers once and ends the session.

    handler_fn(ctx, sender, text) -> str produces the answer; without one
    the agent describes itself. A failing handler is logged and answered
    with the description instead of leaving the session open.
    """
    chat_proto = Protocol(name="chat", version="0.3.0")

    @chat_proto.on_message(ChatMessage)
    async def handle_chat(ctx: Context, sender: str, msg: ChatMessage):
        await ctx.send(sender, ChatAcknowledgement(acknowledged_msg_id=msg.msg_id))

        text = chat_text(msg)
        answer = describe(agent_name, description)
        if handler_fn is not None:
            try:
                answer = await handler_fn(ctx, sender, text)
            except Exception as e:
                logger.error(f"{agent_name} chat handler failed: {e}")

        for content in (TextContent(text=answer), EndSessionContent()):
            await ctx.send(sender, ChatMessage(msg_id=ctx.session, content=[content]))

    @chat_proto.on_message(ChatAcknowledgement)
    async def handle_ack(ctx: Context, sender: str, msg: ChatAcknowledgement):
        logger.debug(f"{agent_name} chat ack from {sender} for {msg.acknowledged_msg_id}")

    return chat_proto
