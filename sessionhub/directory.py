import logging
from typing import Optional
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sessionhub.auth import RequestContext, delete_actor_sessions
from sessionhub.config import get_settings
from sessionhub.credentials import hash_password, needs_rehash, verify_password
from sessionhub.email import EmailSender, recovery_email_html
from sessionhub.errors import ErrorCode, FatalStoreError, FieldError, Outcome
from sessionhub.models import Actor
from sessionhub.tokens import ExpiringTokenStore
from sessionhub.validation import validate_password, validate_signup

logger = logging.getLogger(__name__)
settings = get_settings()


def visible_email(actor: Actor, viewer_id: Optional[int]) -> str:
    """
    An actor's email is shown to that actor only; everyone else gets "".
    """
    return actor.email if viewer_id is not None and viewer_id == actor.id else ""


class ActorDirectory:
    """
    Accounts: signup, login, logout and password recovery.
    
    Every method that changes who is logged in takes the RequestContext
    of the caller and binds or destroys the server-side session on it.
    """
    
    def __init__(self, db: Session, tokens: ExpiringTokenStore, mailer: EmailSender):
        self.db = db
        self.tokens = tokens
        self.mailer = mailer
    
    def get(self, actor_id: int) -> Optional[Actor]:
        return self.db.query(Actor).filter(Actor.id == actor_id).first()
    
    def current_actor(self, ctx: RequestContext) -> Optional[Actor]:
        actor_id = ctx.current_actor_id()
        if actor_id is None:
            return None
        return self.get(actor_id)
    
    def signup(self, ctx: RequestContext, name: str, email: str, password: str) -> Outcome:
        """
        Create an account and log it in.
        
        Uniqueness is checked up front for a friendly error and again by
        the unique constraints on insert; a lost race surfaces as the same
        field error.
        """
        errors = validate_signup(name, email, password)
        if errors:
            return Outcome.from_errors(errors)
        
        lower_case_name = name.lower()
        lower_case_email = email.lower()
        
        conflict = self._find_conflict(lower_case_name, lower_case_email)
        if conflict:
            return Outcome.from_errors([conflict])
        
        actor = Actor(
            name=name,
            lower_case_name=lower_case_name,
            email=email,
            lower_case_email=lower_case_email,
            password_hash=hash_password(password),
        )
        
        try:
            self.db.add(actor)
            self.db.commit()
            self.db.refresh(actor)
        except IntegrityError:
            self.db.rollback()
            conflict = self._find_conflict(lower_case_name, lower_case_email)
            if conflict is None:
                raise
            logger.info("Signup lost a uniqueness race on field '%s'", conflict.field)
            return Outcome.from_errors([conflict])
        
        ctx.bind(actor.id)
        return Outcome.success(actor)
    
    def login(self, ctx: RequestContext, name_or_email: str, password: str) -> Outcome:
        if "@" in name_or_email:
            criterion = Actor.lower_case_email == name_or_email.lower()
        else:
            criterion = Actor.lower_case_name == name_or_email.lower()
        actor = self.db.query(Actor).filter(criterion).first()
        
        if not actor:
            return Outcome.fail("nameOrEmail", "name or email doesn't exist", ErrorCode.NOT_FOUND)
        
        if not verify_password(actor.password_hash, password):
            return Outcome.fail("password", "password is incorrect", ErrorCode.PERMISSION)
        
        if needs_rehash(actor.password_hash):
            actor.password_hash = hash_password(password)
            self.db.commit()
        
        ctx.bind(actor.id)
        return Outcome.success(actor)
    
    def logout(self, ctx: RequestContext) -> bool:
        return ctx.destroy()
    
    def request_password_recovery(self, email: str) -> bool:
        """
        Always True, whether or not the address belongs to an account.
        """
        actor = self.db.query(Actor).filter(Actor.lower_case_email == email.lower()).first()
        if not actor:
            return True
        
        try:
            token = self.tokens.issue(
                settings.forgot_password_prefix,
                str(actor.id),
                settings.password_recovery_ttl_seconds,
            )
        except FatalStoreError:
            # Same answer as for an unknown address
            logger.error("Could not issue a recovery token for actor %s", actor.id, exc_info=True)
            return True

        link = f"{settings.frontend_url}/change-password/{token}"
        self.mailer.send(actor.email, recovery_email_html(link), subject="Reset your password")
        return True
    
    def complete_password_recovery(self, ctx: RequestContext, token: str, new_password: str) -> Outcome:
        errors = validate_password(new_password, field="newPassword")
        if errors:
            return Outcome.from_errors(errors)
        
        actor_id = self.tokens.consume(settings.forgot_password_prefix + token)
        if not actor_id:
            return Outcome.fail("token", "token is expired", ErrorCode.EXPIRED_TOKEN)
        
        actor = self.get(int(actor_id))
        if not actor:
            return Outcome.fail("token", "user does not exist", ErrorCode.NOT_FOUND)
        
        actor.password_hash = hash_password(new_password)
        self.db.commit()
        
        # Logins made with the old password end here
        delete_actor_sessions(self.db, actor.id)
        ctx.bind(actor.id)
        return Outcome.success(actor)
    
    def _find_conflict(self, lower_case_name: str, lower_case_email: str) -> Optional[FieldError]:
        existing = self.db.query(Actor).filter(or_(
            Actor.lower_case_name == lower_case_name,
            Actor.lower_case_email == lower_case_email,
        )).all()
        
        # Name wins when both collide
        if any(a.lower_case_name == lower_case_name for a in existing):
            return FieldError("name", "name is already taken", ErrorCode.CONFLICT)
        if any(a.lower_case_email == lower_case_email for a in existing):
            return FieldError("email", "email is already taken", ErrorCode.CONFLICT)
        return None
