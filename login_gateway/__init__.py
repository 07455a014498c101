"""
Campus Login Gateway
====================

Web login gateway that authenticates users against UIC Shibboleth (SAML)
or, for development, a local list of "shibalike" users, and keeps the
resulting identity in a server-side session.
"""

__version__ = "1.0.0"
