"""Auth service: credentials login, lockout and login telemetry."""

import logging
import secrets
from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from modconsole.core.clock import Clock, utcnow
from modconsole.core.exceptions import AuthenticationError, RateLimitedError
from modconsole.core.rate_limiter import LoginThrottle, login_throttle
from modconsole.core.security import create_access_token, hash_password, verify_password
from modconsole.db.session import CircuitBreaker, db_breaker
from modconsole.models.enums import AuditEvent
from modconsole.models.security import LoginAttempt
from modconsole.models.user import User
from modconsole.services.audit_service import AuditService, audit_service, record
from modconsole.services.membership_service import membership_service
from modconsole.services.security_events import SecurityEventService
from modconsole.services.security_settings import SecuritySettings, get_security_settings

logger = logging.getLogger("modconsole.auth")

INVALID_CREDENTIALS = "Invalid email or password."


class AuthService:
    """Handles authentication and user management."""

    def __init__(
        self,
        clock: Clock = utcnow,
        throttle: Optional[LoginThrottle] = None,
        breaker: Optional[CircuitBreaker] = None,
        audit: Optional[AuditService] = None,
        signals: Optional[SecurityEventService] = None,
    ):
        self.clock = clock
        self.throttle = throttle or login_throttle
        self.breaker = breaker or db_breaker
        self.audit = audit or audit_service
        self.signals = signals or SecurityEventService(clock, audit=self.audit)

    @staticmethod
    def _home_community(db: Session, user: Optional[User], community_id: Optional[str]) -> Optional[str]:
        """Community whose lockout policy applies to this login."""
        if user is None:
            return None
        if community_id and membership_service.is_member(db, community_id, user.id):
            return community_id
        return user.memberships[0].community_id if user.memberships else None

    def _fail(
        self,
        db: Session,
        email: str,
        reason: str,
        user: Optional[User] = None,
        community_id: Optional[str] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        **extra,
    ) -> None:
        db.add(LoginAttempt(
            email=email,
            user_id=user.id if user else None,
            success=False,
            ip=ip,
            user_agent=user_agent,
            created_at=self.clock(),
        ))
        db.flush()
        self.audit.append_best_effort(db, record(
            AuditEvent.LOGIN_FAILED,
            community_id=community_id,
            user_id=user.id if user else None,
            ip=ip,
            user_agent=user_agent,
            email=email,
            reason=reason,
            **extra,
        ))

    def authenticate(
        self,
        db: Session,
        email: str,
        password: str,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        community_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Authenticate a user and return a JWT access token.

        Raises:
            RateLimitedError: Too many attempts for this ip and email.
            AuthenticationError: Bad credentials, disabled or locked account.
            ServiceUnavailableError: The datastore is not answering.
        """
        email = email.strip().lower()

        if not self.throttle.hit(LoginThrottle.key_for(ip, email)):
            self._fail(db, email, "rate_limited", ip=ip, user_agent=user_agent)
            db.commit()
            raise RateLimitedError("Too many login attempts. Try again later.")

        user = self.breaker.call(
            lambda: db.query(User).filter(User.email == email).first()
        )
        home = self._home_community(db, user, community_id)
        now = self.clock()

        if user is None or not user.hashed_password:
            self._fail(db, email, "invalid_credentials", user=user, community_id=home, ip=ip, user_agent=user_agent)
            db.commit()
            raise AuthenticationError(INVALID_CREDENTIALS)

        if user.disabled_at is not None:
            self._fail(db, email, "disabled", user=user, community_id=home, ip=ip, user_agent=user_agent)
            db.commit()
            raise AuthenticationError("Account disabled.")

        if user.locked_until is not None and user.locked_until > now:
            self._fail(db, email, "locked", user=user, community_id=home, ip=ip, user_agent=user_agent)
            db.commit()
            raise AuthenticationError("Account temporarily locked. Try again later.")

        if not verify_password(password, user.hashed_password):
            policy = get_security_settings(db, home) if home else SecuritySettings()
            self._register_failure(db, user, email, policy, home, ip, user_agent)
            db.commit()
            raise AuthenticationError(INVALID_CREDENTIALS)

        user.failed_login_count = 0
        user.locked_until = None
        user.last_login_at = now
        db.add(LoginAttempt(
            email=email, user_id=user.id, success=True,
            ip=ip, user_agent=user_agent, created_at=now,
        ))
        self.audit.append_best_effort(db, record(
            AuditEvent.LOGIN_SUCCESS,
            community_id=home,
            user_id=user.id,
            ip=ip,
            user_agent=user_agent,
            email=email,
        ))
        db.commit()
        logger.info("User %s logged in", user.id)

        session_token = secrets.token_hex(32)
        return {
            "access_token": create_access_token({"sub": user.id, "sid": session_token}),
            "token_type": "bearer",
            "user": {
                "id": user.id,
                "email": user.email,
                "full_name": user.full_name,
                "communities": [m.community_id for m in user.memberships],
            },
        }

    def _register_failure(
        self,
        db: Session,
        user: User,
        email: str,
        policy: SecuritySettings,
        community_id: Optional[str],
        ip: Optional[str],
        user_agent: Optional[str],
    ) -> None:
        """Count a bad password; lock the account once the window fills up."""
        now = self.clock()
        since = now - timedelta(minutes=policy.lockout_window_minutes)
        recent = db.query(LoginAttempt).filter(
            LoginAttempt.email == email,
            LoginAttempt.success.is_(False),
            LoginAttempt.created_at >= since,
        ).count()

        failures = recent + 1
        locked = failures >= policy.lockout_max_attempts
        user.failed_login_count = (user.failed_login_count or 0) + 1
        if locked:
            user.locked_until = now + timedelta(minutes=policy.lockout_duration_minutes)
            logger.warning("Locked user %s after %s failed logins", user.id, failures)

        self._fail(
            db, email, "invalid_credentials", user=user, community_id=community_id,
            ip=ip, user_agent=user_agent, locked=locked or None,
        )
        self.signals.maybe_record_login_failed_burst(
            db, email, user.id, policy.lockout_window_minutes, locked,
            community_id=community_id, ip=ip, user_agent=user_agent,
        )

    @staticmethod
    def create_user(db: Session, email: str, password: Optional[str], full_name: str) -> User:
        """Create a staff account. Caller commits."""
        user = User(
            email=email.strip().lower(),
            hashed_password=hash_password(password) if password else None,
            full_name=full_name,
        )
        db.add(user)
        db.flush()
        return user


auth_service = AuthService()
