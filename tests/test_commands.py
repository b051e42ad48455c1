"""Telegram handlers, driven with stand-in Update/Context objects."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

from delaycast.handlers.commands import cmd_predict, handle_text


class FakeMessage:
    def __init__(self, text: str = "") -> None:
        self.text = text
        self.replies: list[str] = []

    async def reply_text(self, text, **kwargs):
        self.replies.append(text)


def make_update(text: str = ""):
    return SimpleNamespace(message=FakeMessage(text))


def make_context(engine=None, args=None):
    return SimpleNamespace(bot_data={"engine": engine} if engine else {}, args=args or [])


def test_predict_replies_with_forecast(make_engine):
    update = make_update()
    asyncio.run(cmd_predict(update, make_context(make_engine(), ["ua123"])))
    progress, answer = update.message.replies
    assert "UA123" in progress
    assert "Delay probability:</b> 52%" in answer


def test_predict_without_argument_shows_usage(make_engine):
    update = make_update()
    asyncio.run(cmd_predict(update, make_context(make_engine())))
    assert update.message.replies == ["Usage: /predict UA123"]


def test_unknown_flight_reply(make_engine):
    update = make_update("ZZ999")
    asyncio.run(handle_text(update, make_context(make_engine())))
    assert "No live flight found" in update.message.replies[-1]


def test_free_text_that_is_not_a_flight(make_engine):
    update = make_update("how late is my plane?")
    asyncio.run(handle_text(update, make_context(make_engine())))
    assert update.message.replies == ["Send a flight number like UA123, or /help."]


def test_bare_number_is_not_a_flight(make_engine):
    update = make_update("2024")
    asyncio.run(handle_text(update, make_context(make_engine())))
    assert update.message.replies == ["Send a flight number like UA123, or /help."]


def test_engine_not_ready():
    update = make_update("UA123")
    asyncio.run(handle_text(update, make_context()))
    assert update.message.replies == ["⚠️ Bot not ready yet."]
