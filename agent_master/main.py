"""Application entrypoint: interactive console chat against one conversation."""

from __future__ import annotations

import argparse
import asyncio
import logging

from agent_master.config import Settings, load_settings
from agent_master.db import Database
from agent_master.errors import AgentMasterError
from agent_master.service import AgentMasterService

LOGGER = logging.getLogger(__name__)

EXIT_COMMANDS = {"exit", "quit", "/exit", "/quit"}


def build_service(settings: Settings) -> AgentMasterService:
    """Initialize storage and compose the service for the configured environment."""

    db = Database(settings.database_path)
    db.initialize()
    if db.get_tenant_settings(settings.default_tenant_id) is None:
        db.upsert_tenant(settings.default_tenant_id, name="default")
        LOGGER.info("Seeded default tenant %s", settings.default_tenant_id)
    return AgentMasterService(db, settings)


async def run(settings: Settings, agent_key: str | None = None, user_id: str = "console") -> None:
    """Read user turns from stdin and print the assistant's replies."""

    service = build_service(settings)
    tenant_id = settings.default_tenant_id
    conversation_id = service.create_conversation(
        tenant_id, user_id, title="Console session", agent_key=agent_key
    )
    LOGGER.info("Console conversation %s started", conversation_id)

    while True:
        try:
            text = (await asyncio.to_thread(input, "you> ")).strip()
        except EOFError:
            break
        if not text:
            continue
        if text.lower() in EXIT_COMMANDS:
            break
        try:
            result = await service.chat(tenant_id, user_id, conversation_id, text, agent_key=agent_key)
        except AgentMasterError as exc:
            LOGGER.error("Chat failed: %s", exc)
            print(f"error> {exc}")
            continue
        print(f"assistant> {result.message}")
        if result.warning:
            print(f"warning> {result.warning}")

    LOGGER.info("Console session %s closed", conversation_id)


def main() -> None:
    """Synchronous wrapper for asyncio entrypoint."""

    parser = argparse.ArgumentParser(description="Chat with the agent management assistant.")
    parser.add_argument("--agent", dest="agent_key", default=None, help="Agent key to work with")
    parser.add_argument("--user", dest="user_id", default="console", help="User id recorded on the conversation")
    args = parser.parse_args()

    settings = load_settings()
    logging.basicConfig(level=settings.log_level.upper())
    asyncio.run(run(settings, agent_key=args.agent_key, user_id=args.user_id))


if __name__ == "__main__":
    main()
