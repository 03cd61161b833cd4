import os
import warnings

# Ignore warnings from third-party instrumentation
warnings.filterwarnings("ignore", category=DeprecationWarning, module="logfire.*")

# Set test environment variables before any linkdesk module reads configuration
os.environ.update(
    {
        "DEBUG": "false",
        "TWILIO_ACCOUNT_SID": "",
        "TWILIO_AUTH_TOKEN": "",
        "LOGFIRE_ENABLE": "false",
    }
)

from tests.fixtures.signaling_fixtures import *  # noqa: E402, F403
