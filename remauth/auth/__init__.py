"""
Authentication Package

This package implements the relying-party side of the AD Auth redirect flow.

Modules:
- routes: /auth/adauth (start + callback), /auth/userinfo, /auth/logout
- utils: public key cache and AD Auth token verification
- csrf: single-use CSRF-Auth tokens
- session: server-side sessions and the session user
- errors: error taxonomy shared by the above

The authentication flow:
1. Browser opens /auth/adauth and is auto-posted to the identity provider
2. Identity provider authenticates the user against Active Directory
3. Identity provider POSTs a signed token back to /auth/adauth
4. Token is verified and bound to the CSRF-Auth cookie
5. User is stored in a new server-side session
"""

from .routes import auth_router
from .session import ServerSideSessionMiddleware

__all__ = [
    "auth_router",
    "ServerSideSessionMiddleware",
]
