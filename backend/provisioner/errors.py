from typing import Optional

from botocore.exceptions import ClientError


class ProvisioningError(RuntimeError):
    def __init__(self, message: str, *, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class ConfigurationError(ProvisioningError):
    pass


class NotFoundError(ProvisioningError):
    pass


class ConflictError(ProvisioningError):
    pass


class AlreadyExistsError(ProvisioningError):
    pass


class PollTimeoutError(ProvisioningError):
    def __init__(self, message: str, *, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class ProviderError(ProvisioningError):
    pass


class NotSupportedError(ProvisioningError):
    pass


def client_error_code(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        return str(exc.response.get("Error", {}).get("Code") or "")
    return ""


def _classify_code(code: str):
    if not code:
        return ProviderError
    if code.endswith(".NotFound") or code in {"NoSuchKey", "NoSuchHostedZone", "NotFound"}:
        return NotFoundError
    if code.endswith(".Duplicate") or code.endswith("AlreadyExists"):
        return AlreadyExistsError
    return ProviderError


def classify_provider_error(exc: Exception, message: str = "") -> ProvisioningError:
    """Translate a boto failure into the provisioning error taxonomy.

    The provider's own message is preserved; ``message`` is prefixed to
    describe what was being attempted.
    """
    if isinstance(exc, ProvisioningError):
        return exc
    code = client_error_code(exc)
    error_cls = _classify_code(code)
    detail = str(exc)
    text = f"{message}: {detail}" if message else detail
    return error_cls(text, code=code or None)
