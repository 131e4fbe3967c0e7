"""
Bangla10: ten-minute daily spaced-repetition trainer for spoken Bangla.

Packages:
- core: settings-independent helpers (errors, dates, application context)
- delivery: local state, scheduling, sessions and prayer tracking
- sync: envelope codec, remote client, orchestrator and storage backends
- api: progress HTTP service
- cli: terminal interface
"""

__version__ = "0.1.0"
