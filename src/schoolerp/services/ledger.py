"""
Token ledger.

Persisted record of issued refresh tokens and password-reset OTPs. Raw
secrets are never stored: refresh tokens are indexed by SHA-256, OTPs are
bcrypt-hashed because six digits are cheap to brute force from a fast hash.

Ledger methods only stage changes on the session. Callers group them with
``schoolerp.db.atomic`` so multi-step mutations commit together.
"""

import hashlib
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from schoolerp.auth.password import PasswordHasher
from schoolerp.clock import SystemClock, as_utc
from schoolerp.db.models import PasswordResetOtp, RefreshToken

logger = structlog.get_logger()


def hash_token(raw_token: str) -> str:
    """Deterministic lookup key for a refresh token."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


class TokenLedger:
    """Service for refresh-token and OTP bookkeeping."""

    def __init__(self, db: AsyncSession, clock=None, hasher: PasswordHasher | None = None):
        self.db = db
        self.clock = clock or SystemClock()
        self.hasher = hasher or PasswordHasher()

    # ==========================================================================
    # Refresh tokens
    # ==========================================================================

    async def record_refresh_token(
        self,
        user_id: UUID,
        raw_token: str,
        expires_at: datetime,
    ) -> RefreshToken:
        """
        Store a newly issued refresh token.

        Args:
            user_id: Owner of the token
            raw_token: Encoded refresh token (only its hash is kept)
            expires_at: Expiry taken from the token's own claims

        Returns:
            The staged ledger entry
        """
        entry = RefreshToken(
            user_id=user_id,
            token_hash=hash_token(raw_token),
            expires_at=expires_at,
            created_at=self.clock.now(),
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def find_refresh_token(self, raw_token: str) -> RefreshToken | None:
        """Get ledger entry by token hash."""
        result = await self.db.execute(
            select(RefreshToken).where(RefreshToken.token_hash == hash_token(raw_token))
        )
        return result.scalar_one_or_none()

    def is_live(self, entry: RefreshToken) -> bool:
        """Unrevoked and not yet expired."""
        return entry.revoked_at is None and as_utc(entry.expires_at) > self.clock.now()

    async def is_valid(self, raw_token: str) -> bool:
        entry = await self.find_refresh_token(raw_token)
        return entry is not None and self.is_live(entry)

    async def revoke(self, token_hash: str) -> bool:
        """
        Revoke a refresh token by hash.

        Idempotent: revoking an already revoked or unknown token changes
        nothing and returns False.
        """
        result = await self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.token_hash == token_hash)
            .where(RefreshToken.revoked_at.is_(None))
            .values(revoked_at=self.clock.now())
        )
        return result.rowcount > 0

    async def revoke_all_for_user(self, user_id: UUID) -> int:
        """Revoke every unrevoked refresh token a user holds."""
        result = await self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id)
            .where(RefreshToken.revoked_at.is_(None))
            .values(revoked_at=self.clock.now())
        )
        if result.rowcount:
            logger.info("Refresh tokens revoked", user_id=str(user_id), count=result.rowcount)
        return result.rowcount

    # ==========================================================================
    # Password-reset OTPs
    # ==========================================================================

    async def burn_otps(self, email: str) -> int:
        """Mark every unused OTP for an email as used."""
        result = await self.db.execute(
            update(PasswordResetOtp)
            .where(PasswordResetOtp.email == email)
            .where(PasswordResetOtp.used_at.is_(None))
            .values(used_at=self.clock.now())
        )
        return result.rowcount

    async def record_otp(
        self,
        email: str,
        raw_otp: str,
        expires_at: datetime,
    ) -> PasswordResetOtp:
        """
        Store a new OTP for an email, invalidating any earlier unused ones.

        Args:
            email: Normalized email the code was sent to
            raw_otp: Six-digit code
            expires_at: When the code stops being accepted

        Returns:
            The staged OTP record
        """
        await self.burn_otps(email)
        record = PasswordResetOtp(
            email=email,
            otp_hash=await self.hasher.hash_async(raw_otp),
            expires_at=expires_at,
            created_at=self.clock.now(),
        )
        self.db.add(record)
        await self.db.flush()
        return record

    async def latest_unused_otp(self, email: str) -> PasswordResetOtp | None:
        result = await self.db.execute(
            select(PasswordResetOtp)
            .where(PasswordResetOtp.email == email)
            .where(PasswordResetOtp.used_at.is_(None))
            .order_by(PasswordResetOtp.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def check_otp(self, email: str, raw_otp: str) -> PasswordResetOtp | None:
        """Return the matching live OTP record without consuming it."""
        record = await self.latest_unused_otp(email)
        if record is None or as_utc(record.expires_at) <= self.clock.now():
            return None
        if not await self.hasher.verify_async(raw_otp, record.otp_hash):
            return None
        return record

    async def consume_otp(self, email: str, raw_otp: str) -> bool:
        """
        Verify and use up an OTP.

        Returns:
            True if the most recent unused, unexpired OTP matched. Which check
            failed is deliberately not reported.
        """
        record = await self.check_otp(email, raw_otp)
        if record is None:
            return False

        # Conditional on used_at so concurrent consumers cannot both win
        result = await self.db.execute(
            update(PasswordResetOtp)
            .where(PasswordResetOtp.id == record.id)
            .where(PasswordResetOtp.used_at.is_(None))
            .values(used_at=self.clock.now())
        )
        return result.rowcount == 1
