"""Authentication building blocks.

Learn: Three ways to prove who you are, one credential afterwards:
1. Email + password (bcrypt)          → bearer token
2. Google OAuth (code exchange)        → bearer token
3. GitHub OAuth (code exchange)        → bearer token

The bearer token (a signed JWT) is the only session state. Protected
routes resolve it to a CurrentIdentity via auth.dependencies.
"""
