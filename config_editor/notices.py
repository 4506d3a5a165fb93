"""
User-visible notices returned by the editing engine.

The engine never talks to the UI directly. Operations that need to tell the
user something return a Notice and the caller decides how to display it.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

NoticeLevel = Literal['success', 'info', 'warning', 'error']


class Notice(BaseModel):
    """A short message for the user, e.g. a toast."""

    model_config = ConfigDict(frozen=True)

    level: NoticeLevel
    title: str
    message: str = ''
    kind: Optional[str] = None

    @property
    def is_problem(self) -> bool:
        return self.level in ('warning', 'error')

    @classmethod
    def success(cls, title: str, message: str = '', kind: Optional[str] = None) -> 'Notice':
        return cls(level='success', title=title, message=message, kind=kind)

    @classmethod
    def info(cls, title: str, message: str = '', kind: Optional[str] = None) -> 'Notice':
        return cls(level='info', title=title, message=message, kind=kind)

    @classmethod
    def warning(cls, title: str, message: str = '', kind: Optional[str] = None) -> 'Notice':
        return cls(level='warning', title=title, message=message, kind=kind)

    @classmethod
    def error(cls, title: str, message: str = '', kind: Optional[str] = None) -> 'Notice':
        return cls(level='error', title=title, message=message, kind=kind)
