"""
Custom exception classes for the configuration editor.

Every failure raised by the editing engine is recoverable by a user action
(reload, fix the input, retry, or reset the draft). Each exception carries
structured context and recovery suggestions so the UI layer can render a
helpful message without knowing where the error came from.
"""

import logging
from typing import Optional, Dict, Any, List

logger = logging.getLogger(__name__)


class ConfigEditorError(Exception):
    """
    Base exception for configuration editor errors.

    Attributes:
        message: Error message
        context: Additional context information
        recovery_suggestions: List of suggested recovery actions
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None,
                 recovery_suggestions: Optional[List[str]] = None):
        self.message = message
        self.context = context or {}
        self.recovery_suggestions = recovery_suggestions or []
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def get_full_details(self) -> Dict[str, Any]:
        """Get complete error details including context and suggestions."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'context': self.context,
            'recovery_suggestions': self.recovery_suggestions
        }


class LoadFailure(ConfigEditorError):
    """
    Raised when the schema, the settings document or a side-channel document
    could not be fetched.
    """

    def __init__(self, tool: str, original_error: Exception,
                 message: Optional[str] = None):
        self.tool = tool
        self.original_error = original_error

        if message is None:
            message = f"Failed to load configuration for {tool}: {original_error}"

        context = {
            'tool': tool,
            'original_error_type': type(original_error).__name__,
            'original_error_message': str(original_error)
        }

        recovery_suggestions = [
            "Check that the configuration file exists and is readable",
            "Verify the file contains valid JSON",
            "Use the reload action once the problem is fixed"
        ]

        super().__init__(message, context, recovery_suggestions)


class DuplicateKeyError(ConfigEditorError):
    """
    Raised when a key is added twice, either at the top level of a settings
    document or inside a free-form side-channel document.
    """

    def __init__(self, document: str, key: str, message: Optional[str] = None):
        self.document = document
        self.key = key

        if message is None:
            message = f"Duplicate key in {document}: {key}"

        context = {'document': document, 'key': key}
        recovery_suggestions = [
            f"Rename or remove one of the '{key}' entries",
        ]

        super().__init__(message, context, recovery_suggestions)


class ValueParseError(ConfigEditorError):
    """
    Raised when a free-form value looks like JSON but does not parse.
    """

    def __init__(self, document: str, key: str, original_error: Optional[Exception] = None,
                 message: Optional[str] = None):
        self.document = document
        self.key = key
        self.original_error = original_error

        if message is None:
            message = f"Value of {key} in {document} is not valid JSON, please check the format"

        context = {
            'document': document,
            'key': key,
            'original_error_message': str(original_error) if original_error else None
        }
        recovery_suggestions = [
            f"Fix the JSON syntax of '{key}'",
            "Wrap plain text in double quotes or remove the leading JSON character",
        ]

        super().__init__(message, context, recovery_suggestions)


class SaveFailure(ConfigEditorError):
    """
    Raised when the external save operation rejects the payload.

    The message of the underlying error is kept verbatim because it is shown
    to the user as-is.
    """

    def __init__(self, tool: str, original_error: Exception,
                 message: Optional[str] = None):
        self.tool = tool
        self.original_error = original_error

        if message is None:
            message = str(original_error) or type(original_error).__name__

        context = {
            'tool': tool,
            'original_error_type': type(original_error).__name__,
        }
        recovery_suggestions = [
            "Retry the save",
            "Adjust the draft or reset it to the last saved state",
        ]

        super().__init__(message, context, recovery_suggestions)


class EditorNotReadyError(ConfigEditorError):
    """Raised when an edit is attempted before the document finished loading."""

    def __init__(self, tool: str, state: str):
        self.tool = tool
        self.state = state
        super().__init__(
            f"Configuration for {tool} is not ready for editing (state: {state})",
            context={'tool': tool, 'state': state},
            recovery_suggestions=["Wait for loading to finish or reload the configuration"]
        )


class SaveInProgressError(ConfigEditorError):
    """Raised when a second save or a reload is requested while a save is running."""

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(
            f"A save for {tool} is already in progress",
            context={'tool': tool},
            recovery_suggestions=["Wait for the current save to finish"]
        )


class SaveNotPendingError(ConfigEditorError):
    """Raised when confirm_save is called without a pending confirmation."""

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(
            f"No save awaiting confirmation for {tool}",
            context={'tool': tool},
            recovery_suggestions=["Request a save first to review the changes"]
        )


def create_user_friendly_error_message(error: ConfigEditorError) -> Dict[str, Any]:
    """
    Create user-friendly error message for display in UI.

    Args:
        error: ConfigEditorError instance

    Returns:
        Dictionary with formatted error information for UI display
    """
    error_details = error.get_full_details()

    error_type_info = {
        'LoadFailure': {'title': 'Failed to Read Configuration', 'icon': '📄', 'severity': 'error'},
        'DuplicateKeyError': {'title': 'Duplicate Key', 'icon': '⚠️', 'severity': 'warning'},
        'ValueParseError': {'title': 'Invalid JSON Value', 'icon': '🔧', 'severity': 'warning'},
        'SaveFailure': {'title': 'Save Failed', 'icon': '💾', 'severity': 'error'},
        'EditorNotReadyError': {'title': 'Not Ready', 'icon': '⏳', 'severity': 'info'},
        'SaveInProgressError': {'title': 'Save In Progress', 'icon': '⏳', 'severity': 'info'},
        'SaveNotPendingError': {'title': 'Nothing To Confirm', 'icon': 'ℹ️', 'severity': 'info'},
    }

    error_type = error_details['error_type']
    type_info = error_type_info.get(error_type, {
        'title': 'Configuration Error',
        'icon': '❌',
        'severity': 'error'
    })

    return {
        'title': f"{type_info['icon']} {type_info['title']}",
        'message': error_details['message'],
        'severity': type_info['severity'],
        'context': error_details['context'],
        'recovery_suggestions': error_details['recovery_suggestions'],
    }


def log_error_with_context(error: ConfigEditorError, operation: str) -> None:
    """
    Log error with full context information.

    Args:
        error: ConfigEditorError instance
        operation: Description of the operation that failed
    """
    logger.error(f"Configuration editor error during {operation}")
    logger.error(f"Error type: {type(error).__name__}")
    logger.error(f"Error message: {error.message}")

    if error.context:
        logger.error("Error context:")
        for key, value in error.context.items():
            logger.error(f"  {key}: {value}")

    if error.recovery_suggestions:
        logger.info("Recovery suggestions:")
        for i, suggestion in enumerate(error.recovery_suggestions, 1):
            logger.info(f"  {i}. {suggestion}")
