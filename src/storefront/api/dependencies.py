"""Request dependencies — caller identity and role checks.

The caller's account id arrives in the ``X-Account-Id`` header, set by the
authenticating proxy in front of this service.
"""

from fastapi import Depends, Header, HTTPException

from storefront.accounts import is_admin
from storefront.errors import AdminRequired


def current_account(x_account_id: str = Header(default="")) -> str:
    account_id = x_account_id.strip()
    if not account_id:
        raise HTTPException(status_code=401, detail="Missing X-Account-Id header")
    return account_id


def admin_account(account_id: str = Depends(current_account)) -> str:
    if not is_admin(account_id):
        raise AdminRequired()
    return account_id
