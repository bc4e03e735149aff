"""
orgaccess/models/denial.py

Structured negative authorization result returned by guards.
"""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field

from orgaccess.core.errors import AppError, error_for_status


class Denial(BaseModel):
    """
    A guard's refusal, carrying an HTTP-class status and enough detail
    (required role / permission / plan) to render an upgrade or
    access-request prompt.
    """
    model_config = ConfigDict(frozen=True)

    http_status: int
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)

    def to_error(self) -> AppError:
        error_cls = error_for_status(self.http_status, self.code)
        return error_cls(
            self.message,
            code=self.code,
            status_code=self.http_status,
            details=dict(self.details),
        )

