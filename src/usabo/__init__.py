"""USABO study platform backend.

Accounts and sign-in for the study site: local email/password,
Google and GitHub OAuth, all unified behind one signed bearer token.
"""

__version__ = "0.1.0"
