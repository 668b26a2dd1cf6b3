"""
portwarden – passive sentinel reporting every sender that knocks on an idle port.
"""
from portwarden.attempts import ConnectionAttempt, Protocol
from portwarden.detector import AttemptDetector

__all__ = ["AttemptDetector", "ConnectionAttempt", "Protocol"]
__version__ = "0.1.0"
