"""Identity resolver — turns one sign-in attempt into exactly one account.

Learn: Three ways in, one account out.

1. Local registration is a claim made by the user, so it is NOT
   idempotent: a second registration for the same email fails with
   AccountExists, whether it lost a visible check or a silent race at
   the INSERT.
2. Local login checks the password. Unknown email, OAuth-only account
   and wrong password all fail with the same InvalidCredentials.
3. OAuth completion is get-or-create on (provider, external id). Two
   callbacks racing for the same person both end up with the same row:
   the loser's INSERT conflicts and it re-reads the winner's account.

An OAuth profile whose email belongs to a different account (a local
one, or one created through the other provider) is refused with
AccountExists. Nothing is ever linked silently.
"""

import structlog
from email_validator import EmailNotValidError
from email_validator import validate_email as check_email_syntax

from usabo.auth.oauth import ExternalProfile
from usabo.auth.password import (
    MIN_PASSWORD_LENGTH,
    burn_verification_async,
    hash_password_async,
    verify_password_async,
)
from usabo.db.models import (
    MAX_EMAIL_LENGTH,
    MAX_NAME_LENGTH,
    PROVIDER_GITHUB,
    PROVIDER_GOOGLE,
    PROVIDER_LOCAL,
    Account,
)
from usabo.errors import (
    AccountExists,
    ConflictError,
    InvalidCredentials,
    ValidationError,
)
from usabo.services.account_store import AccountDraft, AccountStore

logger = structlog.get_logger()


def validate_email(email: str) -> None:
    """Syntax check only; nothing is looked up in DNS."""
    email = email.strip()
    if len(email) > MAX_EMAIL_LENGTH:
        raise ValidationError(
            f"Email must be at most {MAX_EMAIL_LENGTH} characters"
        )
    try:
        check_email_syntax(email, check_deliverability=False)
    except EmailNotValidError:
        raise ValidationError("Please provide a valid email address")


def validate_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )


def validate_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise ValidationError("Name must not be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Name must be at most {MAX_NAME_LENGTH} characters")
    return name


class IdentityResolver:
    """Find or create the canonical account for a sign-in attempt."""

    def __init__(self, store: AccountStore):
        self.store = store

    # ─── Local ──────────────────────────────────────────

    async def register_local(
        self, name: str | None, email: str | None, password: str | None
    ) -> Account:
        if not name or not email or not password:
            raise ValidationError("Name, email, and password are required")
        validate_email(email)
        validate_password(password)
        name = validate_name(name)

        if await self.store.find_by_email(email):
            raise AccountExists()

        password_hash = await hash_password_async(password)
        try:
            account = await self.store.insert(
                AccountDraft(
                    name=name,
                    email=email,
                    provider=PROVIDER_LOCAL,
                    password_hash=password_hash,
                )
            )
        except ConflictError:
            # Lost the race to a concurrent registration for this email
            logger.info("identity.register_conflict")
            raise AccountExists()

        logger.info("identity.registered", account_id=str(account.id))
        return account

    async def login_local(self, email: str | None, password: str | None) -> Account:
        if not email or not password:
            raise ValidationError("Email and password are required")

        account = await self.store.find_by_email(email)
        if account is None or not account.password_hash:
            await burn_verification_async(password)
            raise InvalidCredentials()

        if not await verify_password_async(password, account.password_hash):
            raise InvalidCredentials()

        logger.info("identity.login", account_id=str(account.id), provider=PROVIDER_LOCAL)
        return account

    # ─── OAuth ──────────────────────────────────────────

    async def complete_oauth(self, profile: ExternalProfile) -> Account:
        """Get-or-create the account for a provider-verified profile."""
        if profile.provider not in (PROVIDER_GOOGLE, PROVIDER_GITHUB):
            raise ValueError(f"Not an OAuth provider: {profile.provider}")
        if len(profile.email) > MAX_EMAIL_LENGTH:
            logger.warning("identity.oauth_email_too_long", provider=profile.provider)
            raise ValidationError(
                f"Email must be at most {MAX_EMAIL_LENGTH} characters"
            )

        account = await self.store.find_by_external_id(
            profile.provider, profile.external_id
        )
        if account is not None:
            logger.info("identity.login", account_id=str(account.id), provider=profile.provider)
            return account

        draft = AccountDraft(
            name=profile.name,
            email=profile.email,
            provider=profile.provider,
            avatar=profile.avatar,
        )
        if profile.provider == PROVIDER_GOOGLE:
            draft.google_id = profile.external_id
        else:
            draft.github_id = profile.external_id

        try:
            account = await self.store.insert(draft)
        except ConflictError as conflict:
            return await self._resolve_oauth_conflict(profile, conflict)

        logger.info(
            "identity.registered",
            account_id=str(account.id),
            provider=profile.provider,
        )
        return account

    async def _resolve_oauth_conflict(
        self, profile: ExternalProfile, conflict: ConflictError
    ) -> Account:
        # Another callback for the same person committed first
        account = await self.store.find_by_external_id(
            profile.provider, profile.external_id
        )
        if account is not None:
            logger.info(
                "identity.oauth_race_resolved",
                account_id=str(account.id),
                provider=profile.provider,
            )
            return account

        existing = await self.store.find_by_email(profile.email)
        if existing is not None:
            logger.warning(
                "identity.oauth_email_collision",
                provider=profile.provider,
                existing_provider=existing.provider,
            )
            raise AccountExists(
                "An account with this email already exists. "
                "Sign in with your original method."
            )

        logger.error("identity.oauth_conflict_unresolved", field=conflict.field)
        raise conflict
