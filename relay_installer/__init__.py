"""Xray relay installer (state-driven, privilege-separated).

Core design goals:
- One process per install step; only the steps that need root run under sudo
- Persisted install state as the only channel between steps
- Resumable from any step against the saved state
- Config written as ordered fragments for xray -confdir
- Centralized logging
"""

__all__ = []
