"""
src/agent/agent_errors.py

Purpose: Error kinds surfaced by the sidecar agent
Context: Internal layers raise these; the control API maps each one to an
         HTTP status and the standard response envelope.
"""


class AgentError(Exception):
    """Base error carrying the HTTP status it maps to"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequestError(AgentError):
    status_code = 400


class NotFoundError(AgentError):
    status_code = 404


class InternalServerError(AgentError):
    status_code = 500


class BadGatewayError(AgentError):
    status_code = 502


class RuleValidationError(BadRequestError):
    """Rule text failed the structural syntax check"""


class ControlBridgeError(InternalServerError):
    """Suricata control command could not be run or returned an error"""
