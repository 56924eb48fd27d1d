"""Account registration, authentication, and tier changes on top of the store."""
import logging

from . import database
from .models import Account, Tier
from .passwords import hash_password, verify_password, needs_upgrade, is_valid_password
from .config import MIN_USERNAME_LENGTH, MIN_PASSWORD_LENGTH, PASSWORD_HASH_PREFIX

logger = logging.getLogger(__name__)


class AccountError(Exception):
    """Base class for account operation failures."""


class DuplicateAccountError(AccountError):
    pass


class InvalidUsernameError(AccountError):
    pass


class InvalidPasswordError(AccountError):
    pass


class AuthenticationError(AccountError):
    pass


class AccountNotFoundError(AccountError):
    pass


class AccountService:
    """
    Account operations backed by the SQLite store.

    Every mutating call persists immediately.
    """

    def get(self, username: str) -> Account:
        account = database.load_account(username)
        if account is None:
            raise AccountNotFoundError(f"No account named '{username}'")
        return account

    def exists(self, username: str) -> bool:
        return database.account_exists(username)

    def save(self, account: Account) -> None:
        database.save_account(account)

    def register(self, username: str, password: str, tier: Tier = Tier.BASIC) -> Account:
        username = (username or "").strip()
        if len(username) < MIN_USERNAME_LENGTH:
            raise InvalidUsernameError(
                f"Username must be at least {MIN_USERNAME_LENGTH} characters"
            )
        if self.exists(username):
            raise DuplicateAccountError(f"Username '{username}' is already taken")
        if not is_valid_password(password):
            raise InvalidPasswordError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters "
                f"and must not start with '{PASSWORD_HASH_PREFIX}'"
            )

        account = Account(username=username, password_hash=hash_password(password), tier=tier)
        self.save(account)
        logger.info(f"Registered {tier.display_name} account '{username}'")
        return account

    def login(self, username: str, password: str) -> Account:
        """
        Verify credentials and return the account.

        Legacy plaintext passwords are re-hashed on success.
        """
        account = database.load_account(username)
        if account is None or not verify_password(password, account.password_hash):
            raise AuthenticationError("Invalid username or password")

        if needs_upgrade(account.password_hash):
            account.password_hash = hash_password(password)
            self.save(account)
            logger.info(f"Upgraded stored password for '{username}' to a secure hash")
        return account

    def change_password(self, username: str, old_password: str, new_password: str) -> None:
        account = self.get(username)
        if not verify_password(old_password, account.password_hash):
            raise AuthenticationError("Current password is incorrect")
        if not is_valid_password(new_password):
            raise InvalidPasswordError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if old_password == new_password:
            raise InvalidPasswordError("New password must differ from the current one")

        account.password_hash = hash_password(new_password)
        self.save(account)

    def upgrade_to_premium(self, username: str) -> Account:
        """Promote to Premium, keeping history and watchlist. No-op if already Premium."""
        account = self.get(username)
        if account.tier is Tier.PREMIUM:
            return account
        account.tier = Tier.PREMIUM
        self.save(account)
        logger.info(f"Upgraded '{username}' to Premium")
        return account

    def delete(self, username: str) -> None:
        if not database.delete_account(username):
            raise AccountNotFoundError(f"No account named '{username}'")
