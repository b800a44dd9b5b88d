"""Error taxonomy for provider integrations and agent execution."""

from typing import Optional


class IntegrationError(Exception):
    """Base class for errors surfaced by the integration core.

    Each subclass carries the HTTP status and machine-readable code the API
    layer renders it with.
    """

    status_code: int = 500
    code: str = "INTEGRATION_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ProviderNotConfigured(IntegrationError):
    """Tenant has no settings row for the provider, or it is disabled."""

    status_code = 400
    code = "PROVIDER_NOT_CONFIGURED"


class MissingCredential(IntegrationError):
    """Settings exist but the decrypted API key is empty."""

    status_code = 400
    code = "MISSING_CREDENTIAL"


class UnsupportedProvider(IntegrationError):
    status_code = 400
    code = "UNSUPPORTED_PROVIDER"


class DecryptionFailed(IntegrationError):
    """Credential envelope is corrupted, tampered with, or undecryptable."""

    status_code = 500
    code = "DECRYPTION_FAILED"


class RetryableUpstreamError(IntegrationError):
    """429/503 or network failure still within the retry budget.

    Absorbed by the client's backoff loop, never raised to callers.
    """

    status_code = 503
    code = "UPSTREAM_RETRYABLE"

    def __init__(self, message: str, *, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = upstream_status


class TerminalUpstreamError(IntegrationError):
    """Non-retryable upstream response (any non-2xx other than 429/503)."""

    status_code = 502
    code = "UPSTREAM_ERROR"

    def __init__(self, message: str, *, upstream_status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.body = body


class RetriesExhausted(IntegrationError):
    status_code = 503
    code = "RETRIES_EXHAUSTED"

    def __init__(self, message: str, *, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class ModelCallError(IntegrationError):
    """Language-model vendor returned an error response."""

    status_code = 502
    code = "MODEL_CALL_FAILED"


class AgentStepFailure(IntegrationError):
    """A tool failure ended an agent task's loop."""

    status_code = 500
    code = "AGENT_STEP_FAILED"

    def __init__(self, message: str, *, tool_name: str, step_number: int):
        super().__init__(message)
        self.tool_name = tool_name
        self.step_number = step_number


class AgentTimeout(IntegrationError):
    status_code = 504
    code = "AGENT_TIMEOUT"


class InvalidTaskTransition(IntegrationError):
    status_code = 409
    code = "INVALID_TASK_TRANSITION"
