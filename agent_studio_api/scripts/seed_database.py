"""Seed the Agent Studio Database

Creates the tables, a user, the built-in tool rows and (optionally) an
agent profile, then prints a bearer token for calling /api/rag-chat.
"""

import argparse
import sys
import logging
from datetime import timedelta
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from agent_studio.config import load_config
from agent_studio.database import (
    init_db,
    get_db_session,
    UserCRUD,
    AIProfileCRUD,
    AgentToolCRUD,
)
from agent_studio.auth import create_access_token
from agent_studio.agentic.tools import BUILTIN_TOOLS

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Seed the Agent Studio database")
    parser.add_argument("--email", default="dev@example.com", help="Email of the user to create")
    parser.add_argument("--name", default="Developer", help="Display name of the user")
    parser.add_argument("--agent-id", default=None, help="Also create an agent profile with this id")
    parser.add_argument("--agent-name", default="Research Analyst", help="Name of the agent profile")
    parser.add_argument("--long-term-memory", action="store_true", help="Enable long-term memory on the profile")
    parser.add_argument("--skip-tools", action="store_true", help="Do not create the built-in tool rows")
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point for database seeding."""
    args = parse_args(argv)
    config = load_config()

    init_db()
    db = get_db_session()
    try:
        user = UserCRUD.get_by_email(db, args.email)
        if user is None:
            user = UserCRUD.create(db, email=args.email, name=args.name)
            logger.info(f"Created user {user.id} <{user.email}>")
        else:
            logger.info(f"User {user.id} <{user.email}> already exists")

        if not args.skip_tools:
            for tool in BUILTIN_TOOLS:
                if AgentToolCRUD.get_by_name(db, tool.name) is None:
                    AgentToolCRUD.create(
                        db,
                        name=tool.name,
                        description=tool.description,
                        display_name=tool.display_name,
                        tool_type=tool.tool_type,
                        config=tool.config
                    )
                    logger.info(f"Created tool: {tool.name}")

        if args.agent_id and AIProfileCRUD.get_by_id(db, args.agent_id) is None:
            AIProfileCRUD.create(
                db,
                name=args.agent_name,
                profile_id=args.agent_id,
                memory_settings={"long_term_enabled": args.long_term_memory},
                awareness_settings={}
            )
            logger.info(f"Created agent profile: {args.agent_id}")

        token = create_access_token(
            user.id,
            user.email,
            expires_delta=timedelta(minutes=config.auth.access_token_expire_minutes)
        )
    finally:
        db.close()

    print(token)
    logger.info(f"Run: uvicorn agent_studio.api:app --host {config.api.host} --port {config.api.port}")


if __name__ == "__main__":
    main()
