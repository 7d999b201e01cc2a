"""Tests for per-service log context."""

from __future__ import annotations

import asyncio

import structlog

from service_guard.logging.context import SERVICE_KEY, service_context


class TestServiceContext:
    def test_binds_and_restores(self) -> None:
        with service_context("llm-engine", interval=5.0):
            bound = structlog.contextvars.get_contextvars()
            assert bound[SERVICE_KEY] == "llm-engine"
            assert bound["interval"] == 5.0
        assert SERVICE_KEY not in structlog.contextvars.get_contextvars()

    async def test_tasks_do_not_share_context(self) -> None:
        seen: dict[str, str] = {}

        async def poll(name: str) -> None:
            with service_context(name):
                await asyncio.sleep(0)
                seen[name] = structlog.contextvars.get_contextvars()[SERVICE_KEY]

        await asyncio.gather(poll("llm-engine"), poll("vision-api"))
        assert seen == {"llm-engine": "llm-engine", "vision-api": "vision-api"}
