"""Pytest configuration for integration tests.

Integration tests interact with real external services (Twilio Network
Traversal Service) and require actual credentials to run.
"""

import warnings

warnings.filterwarnings("ignore", category=DeprecationWarning, module="logfire.*")
