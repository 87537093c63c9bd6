#!/usr/bin/env python
"""Seed development database with two users, a project and its chat.

Seeds the development database so the chat UI has something to show locally.

Constraints:
- Refuses to run in staging or prod (DEVCOLLAB_ENV check)
- Idempotent: users are inserted with ON CONFLICT DO NOTHING, the project and
  its chat are reused when they already exist
- Never runs automatically (manual invocation only)

Usage:
    DATABASE_URL=... JWT_SECRET=... python scripts/seed_dev.py
"""

import os
import sys
from uuid import UUID

SEED_OWNER_ID = UUID("00000000-0000-4000-8000-000000000001")
SEED_PEER_ID = UUID("00000000-0000-4000-8000-000000000002")
SEED_PROJECT_NAME = "DevCollab demo"


def main():
    # 1. Environment check (hard fail in staging/prod)
    devcollab_env = os.getenv("DEVCOLLAB_ENV", "local")
    if devcollab_env not in ("local", "test"):
        print(f"ERROR: seed_dev.py refuses to run in DEVCOLLAB_ENV={devcollab_env}")
        sys.exit(1)

    # 2. Check DATABASE_URL
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        print("ERROR: DATABASE_URL environment variable must be set")
        sys.exit(1)

    from sqlalchemy import select

    from devcollab.db.models import Project
    from devcollab.db.session import session_scope
    from devcollab.services import chats as chats_service
    from devcollab.services.bootstrap import ensure_user
    from devcollab.services.projects import create_project

    with session_scope() as db:
        # 3. Users
        ensure_user(db, SEED_OWNER_ID, {"name": "Ada Owner", "username": "ada"})
        ensure_user(db, SEED_PEER_ID, {"name": "Linus Peer", "username": "linus"})

        # 4. Project and project chat
        project_id = db.scalar(
            select(Project.id).where(
                Project.owner_id == SEED_OWNER_ID, Project.name == SEED_PROJECT_NAME
            )
        )
        project_created = project_id is None
        if project_created:
            project_id = create_project(db, SEED_OWNER_ID, SEED_PROJECT_NAME).id

        chat_id = chats_service.get_project_chat_id(db, project_id)
        chat_created = chat_id is None
        if chat_created:
            chat_id = chats_service.create_project_chat(db, project_id, SEED_OWNER_ID).id
        chats_service.add_participant(db, chat_id, SEED_OWNER_ID, SEED_PEER_ID)

        # 5. Direct chat between the two users
        direct = chats_service.get_or_create_direct_chat(db, SEED_OWNER_ID, SEED_PEER_ID)

    # 6. Report
    db_display = database_url.split("@")[1] if "@" in database_url else database_url
    print(f"Database: {db_display}")
    print(f"DEVCOLLAB_ENV: {devcollab_env}")
    print()
    print(f"{'✓ Created' if project_created else '• Exists'}: project {project_id}")
    print(f"{'✓ Created' if chat_created else '• Exists'}: project chat {chat_id}")
    print(f"• Direct chat {direct.id}")


if __name__ == "__main__":
    main()
