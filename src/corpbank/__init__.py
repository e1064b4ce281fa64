"""
corpbank: client and webhook toolkit for the CorpBank AIS/PIS API.

Outbound API calls and inbound webhook notifications are authenticated with
HMAC-SHA256 signed bearer tokens bound to an API key.
"""

__version__ = "1.0.0"
