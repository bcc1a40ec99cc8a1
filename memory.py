import logging
from typing import List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from database.models import Conversation, ConversationMessage, Memory, utcnow
from errors import PersistenceError
from schemas import ChatTurn

logger = logging.getLogger("chatbot.memory")

CONTEXT_ROLES = {"user", "assistant"}


def fetch_memory_rows(db: Session, user_id: str, limit: int = 50) -> List[Memory]:
    """Newest ``limit`` memory rows for a user, returned oldest -> newest."""
    try:
        rows = (
            db.query(Memory)
            .filter(Memory.user_id == user_id)
            .order_by(Memory.created_at.desc(), Memory.id.desc())
            .limit(limit)
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Memory lookup failed for user={user_id}: {e}")
        raise PersistenceError("Failed to load memory") from e
    rows.reverse()
    return rows


def load_memory(db: Session, user_id: str, limit: int = 50) -> List[ChatTurn]:
    rows = fetch_memory_rows(db, user_id, limit)
    # system rows are kept in the store but never replayed to the model
    return [ChatTurn(role=r.role, content=r.content) for r in rows if r.role in CONTEXT_ROLES]


def ensure_conversation(db: Session, user_id: str) -> Conversation:
    """
    Return the user's conversation record, creating it if needed.

    The record is created in its own short transaction. When a concurrent
    request created it first, the unique ``user_id`` rejects our insert and
    the existing record is used instead.
    """
    record = get_conversation(db, user_id)
    if record is not None:
        return record

    record = Conversation(user_id=user_id)
    db.add(record)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(f"Conversation for user={user_id} created concurrently, reusing it")
        record = get_conversation(db, user_id)
        if record is None:
            raise PersistenceError("Failed to save conversation")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Creating conversation failed for user={user_id}: {e}")
        raise PersistenceError("Failed to save conversation") from e
    return record


def save_exchange(
    db: Session,
    user_id: str,
    turns: Sequence[ChatTurn],
    reply: str,
    include_user_turns: bool = False,
    max_rows: int = 0,
) -> Conversation:
    """
    Persist one chat exchange in a single transaction.

    The submitted turns and the reply are inserted as new conversation
    message rows; the reply (and, optionally, the submitted user turns)
    become memory rows. Memory pruning, when enabled, is part of the same
    transaction.
    """
    new_messages = [(t.role, t.content) for t in turns]
    new_messages.append(("assistant", reply))

    record = ensure_conversation(db, user_id)

    try:
        for role, content in new_messages:
            db.add(ConversationMessage(conversation_id=record.id, role=role, content=content))
        record.updated_at = utcnow()

        if include_user_turns:
            for turn in turns:
                if turn.role == "user":
                    db.add(Memory(user_id=user_id, role="user", content=turn.content))
        db.add(Memory(user_id=user_id, role="assistant", content=reply))

        if max_rows > 0:
            db.flush()
            delete_oldest_memory(db, user_id, max_rows)

        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Saving exchange failed for user={user_id}: {e}")
        raise PersistenceError("Failed to save conversation") from e

    return record


def delete_oldest_memory(db: Session, user_id: str, max_rows: int) -> int:
    """Delete the oldest memory rows beyond ``max_rows``; the caller commits."""
    total = db.query(func.count(Memory.id)).filter(Memory.user_id == user_id).scalar()
    if not total or total <= max_rows:
        return 0
    to_delete = total - max_rows
    subq = (
        db.query(Memory.id)
        .filter(Memory.user_id == user_id)
        .order_by(Memory.created_at.asc(), Memory.id.asc())
        .limit(to_delete)
        .subquery()
    )
    db.query(Memory).filter(Memory.id.in_(select(subq.c.id))).delete(
        synchronize_session=False
    )
    logger.info(f"Pruned {to_delete} old memory rows for user={user_id}")
    return to_delete


def prune_memory(db: Session, user_id: str, max_rows: int) -> int:
    """Delete the oldest memory rows beyond ``max_rows`` for a user."""
    try:
        deleted = delete_oldest_memory(db, user_id, max_rows)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Pruning memory failed for user={user_id}: {e}")
        raise PersistenceError("Failed to prune memory") from e
    return deleted


def clear_memory(db: Session, user_id: str) -> int:
    try:
        deleted = db.query(Memory).filter(Memory.user_id == user_id).delete(
            synchronize_session=False
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Clearing memory failed for user={user_id}: {e}")
        raise PersistenceError("Failed to clear memory") from e
    logger.info(f"Cleared {deleted} memory rows for user={user_id}")
    return deleted


def get_conversation(db: Session, user_id: str) -> Optional[Conversation]:
    try:
        return db.query(Conversation).filter(Conversation.user_id == user_id).one_or_none()
    except SQLAlchemyError as e:
        logger.error(f"Conversation lookup failed for user={user_id}: {e}")
        raise PersistenceError("Failed to load conversation") from e
