from typing import List
from sqlalchemy.orm import Session
from sessionhub.errors import ErrorCode, Outcome
from sessionhub.models import Session as SessionModel, SessionComment

COMMENT_MAX_LENGTH = 2000


class CommentBoard:
    """
    Comments on a session. Open on cancelled and past sessions too.
    """

    def __init__(self, db: Session):
        self.db = db

    def list_for_session(self, session_id: int) -> List[SessionComment]:
        return self.db.query(SessionComment).filter(
            SessionComment.session_id == session_id
        ).order_by(SessionComment.created_at.asc(), SessionComment.id.asc()).all()

    def add(self, session_id: int, creator_id: int, text: str) -> Outcome:
        if not text or not text.strip():
            return Outcome.fail("text", "comment cannot be empty")
        if len(text) > COMMENT_MAX_LENGTH:
            return Outcome.fail("text", f"comment can be at most {COMMENT_MAX_LENGTH} characters long")

        exists = self.db.query(SessionModel.id).filter(SessionModel.id == session_id).first()
        if not exists:
            return Outcome.fail("sessionId", "session not found", ErrorCode.NOT_FOUND)

        comment = SessionComment(text=text, session_id=session_id, creator_id=creator_id)
        self.db.add(comment)
        self.db.commit()
        self.db.refresh(comment)
        return Outcome.success(comment)

    def delete(self, comment_id: int, by_actor_id: int) -> Outcome:
        comment = self.db.query(SessionComment).filter(SessionComment.id == comment_id).first()
        if not comment:
            return Outcome.fail("id", "comment not found", ErrorCode.NOT_FOUND)
        if comment.creator_id != by_actor_id:
            return Outcome.fail("id", "only the author can delete a comment", ErrorCode.PERMISSION)

        self.db.delete(comment)
        self.db.commit()
        return Outcome.success(True)
