"""Account directory port — who an account is and what it may do.

Authentication happens in front of this service; requests arrive with an
account id already established. The directory only answers role and
contact questions about that id.
"""

from abc import ABC, abstractmethod
from enum import Enum


class AccountRole(Enum):
    CUSTOMER = "Customer"
    ADMIN = "Admin"


class AccountDirectory(ABC):
    """Abstract interface for account lookups."""

    @abstractmethod
    def role_for(self, account_id: str) -> AccountRole:
        """Return the account's role. Unknown accounts are customers."""
        ...

    @abstractmethod
    def email_for(self, account_id: str) -> str | None:
        """Return the account's e-mail address, if known."""
        ...


class InMemoryAccountDirectory(AccountDirectory):
    """Directory backed by a dict, for development and tests."""

    def __init__(self) -> None:
        self._accounts: dict[str, dict] = {}

    def register(self, account_id: str, role: AccountRole = AccountRole.CUSTOMER, email: str | None = None) -> None:
        self._accounts[str(account_id)] = {"role": role, "email": email}

    def role_for(self, account_id: str) -> AccountRole:
        account = self._accounts.get(str(account_id))
        return account["role"] if account else AccountRole.CUSTOMER

    def email_for(self, account_id: str) -> str | None:
        account = self._accounts.get(str(account_id))
        return account["email"] if account else None

    def reset(self) -> None:
        self._accounts.clear()
