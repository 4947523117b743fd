"""
Services Layer

Scheduling, pairing and bracket services that:
- Accept domain inputs (IDs, sessions, configs)
- Return domain outputs (models, dicts, dataclasses)
- Generate fully in memory and persist in one commit
- Raise match_scheduler.exceptions errors instead of returning error codes
"""
