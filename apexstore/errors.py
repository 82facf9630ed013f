"""
Error taxonomy.

Every error carries the HTTP status it maps to and a public message that is
safe to return to the caller. Details that must not leak (gateway responses,
stack traces) only go to the log.
"""


class ApexStoreError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


# ---- bad client input (400)
class ValidationError(ApexStoreError):
    status_code = 400
    message = "Invalid request"


class InvalidAmount(ValidationError):
    message = "Invalid donation amount"


class UnknownProduct(ValidationError):
    message = "Invalid rank"


# ---- gateway call failed (500)
class UpstreamError(ApexStoreError):
    status_code = 500
    message = "Upstream error"


class SessionCreationFailed(UpstreamError):
    message = "Failed to create checkout session"


# ---- webhook authenticity (400, gateway retries)
class AuthenticityError(ApexStoreError):
    status_code = 400
    message = "Webhook authenticity check failed"


class WebhookVerificationFailed(AuthenticityError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Webhook Error: {reason}")


# ---- persisted state unreadable; never surfaced to callers
class StorageError(ApexStoreError):
    message = "Ledger document unreadable"
