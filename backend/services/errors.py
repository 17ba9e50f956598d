"""
Service-level errors

Raised by the template and process services, translated to HTTP status codes in app.py.
"""


class ProcessServiceError(Exception):
    """Base class for process service failures"""
    pass


class TemplateNotFoundError(ProcessServiceError):
    """Template does not exist or is not visible to the caller's organization"""

    def __init__(self, template_id: str):
        super().__init__(f"Template {template_id} not found")
        self.template_id = template_id


class ProcessNotFoundError(ProcessServiceError):
    """Process does not exist or belongs to another organization"""

    def __init__(self, process_id: str):
        super().__init__(f"Process {process_id} not found")
        self.process_id = process_id


class TemplateValidationError(ProcessServiceError):
    """Request payload rejected before any write"""

    def __init__(self, message: str, errors=None):
        super().__init__(message)
        self.errors = errors or []


class PersistenceError(ProcessServiceError):
    """A storage operation failed; the surrounding transaction was rolled back"""
    pass
