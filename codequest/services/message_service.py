"""
codequest.services.message_service — Player Inbox
==================================================

Player side of admin messages: list your own and mark them read.
"""

from __future__ import annotations

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from codequest.constants import MessageStatus
from codequest.database.models import AdminMessage


def list_inbox(engine: Engine, user_id: int) -> list[AdminMessage]:
    with Session(engine) as session:
        return list(session.scalars(
            select(AdminMessage)
            .where(AdminMessage.to_user_id == user_id)
            .order_by(AdminMessage.sent_at.desc(), AdminMessage.id.desc())
        ).all())


def mark_read(engine: Engine, *, user_id: int, message_id: int) -> AdminMessage | None:
    """Mark one of *user_id*'s messages read.

    Messages addressed to someone else are reported as not found.
    """
    with Session(engine, expire_on_commit=False) as session:
        msg = session.get(AdminMessage, message_id)
        if msg is None or msg.to_user_id != user_id:
            return None
        msg.status = MessageStatus.READ.value
        session.commit()
        session.expunge(msg)
        return msg
