"""
UI feedback utilities for the configuration editor.
Renders engine notices and errors in Streamlit.
"""

import streamlit as st
from typing import Optional
import logging

from .exceptions import ConfigEditorError, create_user_friendly_error_message
from .notices import Notice

logger = logging.getLogger(__name__)

_ICONS = {
    'success': '✅',
    'info': 'ℹ️',
    'warning': '⚠️',
    'error': '❌'
}


class Notify:
    """
    Toast-first notification helper.

    Usage:
    Notify.show(manager.add_key("model"))
    Notify.error("Something went wrong.")
    """

    @staticmethod
    def _display(message: str, notification_type: str = 'info') -> None:
        icon = _ICONS.get(notification_type, 'ℹ️')
        if hasattr(st, 'toast'):
            st.toast(message, icon=icon)
            return

        full_message = f"{icon} {message}"
        if notification_type == 'success':
            st.success(full_message)
        elif notification_type == 'warning':
            st.warning(full_message)
        elif notification_type == 'error':
            st.error(full_message)
        else:
            st.info(full_message)

    @staticmethod
    def show(notice: Optional[Notice]) -> None:
        """Display a notice returned by the engine."""
        if notice is None:
            return
        text = f"{notice.title}: {notice.message}" if notice.message else notice.title
        logger.debug(f"Notice [{notice.level}] {text}")
        Notify._display(text, notice.level)

    @staticmethod
    def success(message: str) -> None:
        Notify._display(message, 'success')

    @staticmethod
    def info(message: str) -> None:
        Notify._display(message, 'info')

    @staticmethod
    def warn(message: str) -> None:
        Notify._display(message, 'warning')

    @staticmethod
    def error(message: str) -> None:
        Notify._display(message, 'error')


def show_error(error: ConfigEditorError, inline: bool = True) -> None:
    """
    Show an engine error with its recovery suggestions.

    Args:
        error: The error to display
        inline: Render a persistent block instead of a toast
    """
    details = create_user_friendly_error_message(error)
    if not inline:
        Notify._display(f"{details['title']}: {details['message']}", details['severity'])
        return

    body = f"**{details['title']}**\n\n{details['message']}"
    if details['severity'] == 'warning':
        st.warning(body)
    elif details['severity'] == 'info':
        st.info(body)
    else:
        st.error(body)

    if details['recovery_suggestions']:
        with st.expander("🔧 Suggested Actions"):
            for suggestion in details['recovery_suggestions']:
                st.write(f"• {suggestion}")
