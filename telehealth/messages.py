"""
Consultation messaging – list, send and mark-as-read, each gated on the
caller being a participant of the owning consultation.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update

from telehealth.errors import NotFoundError, ValidationError, mutation, read_operation
from telehealth.rbac import ensure_consultation_access
from telehealth.schema import MESSAGE_TYPES, messages, new_id, users

logger = logging.getLogger(__name__)


def _sender_name(first_name: Optional[str], last_name: Optional[str]) -> str:
    return f"{first_name or ''} {last_name or ''}".strip()


def _shape_message(row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "consultation_id": row["consultation_id"],
        "sender_id": row["sender_id"],
        "sender_name": _sender_name(row["sender_first_name"], row["sender_last_name"]),
        "sender_type": row["sender_user_type"],
        "content": row["content"],
        "message_type": row["message_type"],
        "status": row["status"],
        "attachment_url": row["attachment_url"],
        "attachment_name": row["attachment_name"],
        "is_edited": bool(row["is_edited"]),
        "edited_at": row["edited_at"],
        "reply_to_message_id": row["reply_to_message_id"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


@read_operation(list)
def list_messages(engine, caller, consultation_id: str) -> List[Dict[str, Any]]:
    """Every message of the consultation, oldest first."""
    with engine.connect() as conn:
        ensure_consultation_access(conn, consultation_id, caller)
        rows = conn.execute(
            select(
                messages,
                users.c.first_name.label("sender_first_name"),
                users.c.last_name.label("sender_last_name"),
                users.c.user_type.label("sender_user_type"),
            )
            .select_from(messages.outerjoin(users, messages.c.sender_id == users.c.id))
            .where(messages.c.consultation_id == consultation_id)
            .order_by(messages.c.created_at.asc())
        ).mappings().all()
    return [_shape_message(r) for r in rows]


@mutation
def send_message(engine, caller, consultation_id: str, content: str,
                 message_type: str = "text",
                 attachment_url: Optional[str] = None,
                 attachment_name: Optional[str] = None,
                 reply_to_message_id: Optional[str] = None) -> Dict[str, Any]:
    """Post a message as the caller; it is stored with status ``sent``."""
    if not content or not content.strip():
        raise ValidationError("Message content is required")
    if message_type not in MESSAGE_TYPES:
        raise ValidationError(f"Unsupported message type '{message_type}'")

    now = datetime.utcnow()
    values = {
        "id": new_id(),
        "consultation_id": consultation_id,
        "sender_id": caller.id,
        "content": content,
        "message_type": message_type,
        "status": "sent",
        "attachment_url": attachment_url,
        "attachment_name": attachment_name,
        "is_edited": False,
        "edited_at": None,
        "reply_to_message_id": reply_to_message_id,
        "created_at": now,
        "updated_at": now,
    }
    with engine.begin() as conn:
        ensure_consultation_access(conn, consultation_id, caller, action="send messages in")
        conn.execute(messages.insert().values(**values))

    logger.info("User %s sent message %s in consultation %s", caller.id, values["id"], consultation_id)
    return {
        "success": True,
        "message": _shape_message({
            **values,
            "sender_first_name": caller.first_name,
            "sender_last_name": caller.last_name,
            "sender_user_type": caller.user_type,
        }),
    }


@mutation
def mark_message_read(engine, caller, message_id: str) -> Dict[str, Any]:
    """Advance a message to ``read``; only a participant may do so."""
    with engine.begin() as conn:
        row = conn.execute(
            select(messages.c.consultation_id).where(messages.c.id == message_id).limit(1)
        ).first()
        if row is None:
            raise NotFoundError("Message not found")
        consultation_id = row[0]

        ensure_consultation_access(conn, consultation_id, caller, action="read messages in")
        conn.execute(
            update(messages)
            .where(messages.c.id == message_id)
            .where(messages.c.consultation_id == consultation_id)
            .values(status="read", updated_at=datetime.utcnow())
        )
    return {"success": True}
