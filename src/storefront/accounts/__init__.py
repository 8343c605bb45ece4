"""Account directory access.

Provides get_directory() / set_directory() to swap implementations. The
in-memory directory is the default; a real identity service adapter can be
installed at application start-up.
"""

from storefront.accounts.directory import AccountDirectory, AccountRole, InMemoryAccountDirectory

_current_directory: AccountDirectory | None = None


def get_directory() -> AccountDirectory:
    """Return the current account directory. Defaults to InMemoryAccountDirectory."""
    global _current_directory
    if _current_directory is None:
        _current_directory = InMemoryAccountDirectory()
    return _current_directory


def set_directory(directory: AccountDirectory) -> None:
    global _current_directory
    _current_directory = directory


def reset_directory() -> None:
    global _current_directory
    _current_directory = None


def is_admin(account_id: str) -> bool:
    return get_directory().role_for(account_id) == AccountRole.ADMIN
