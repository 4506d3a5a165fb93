"""
Session state management for the Streamlit configuration editor.
Keeps one independent editing session per tool across reruns.
"""

import streamlit as st
from typing import Dict, List, Optional
from datetime import datetime
import logging

from .config_loader import ToolConfig
from .save_orchestrator import EditorSession
from .tool_stores import build_tool_store

logger = logging.getLogger(__name__)


class SessionManager:
    """Manages Streamlit session state for the configuration editor."""

    @staticmethod
    def initialize():
        """Initialize session state variables; existing keys are kept."""
        defaults = {
            'current_tool': None,
            'editor_sessions': {},
            'show_add_option': False,
            'widget_revisions': {},
            'last_activity': datetime.now(),
            'session_id': None,
        }

        for key, default_value in defaults.items():
            if key not in st.session_state:
                st.session_state[key] = default_value

        if not st.session_state.session_id:
            st.session_state.session_id = f"session_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
            logger.info(f"Session initialized: {st.session_state.session_id}")

    @staticmethod
    def get_current_tool() -> Optional[str]:
        return st.session_state.get('current_tool')

    @staticmethod
    def set_current_tool(name: Optional[str]):
        old_tool = st.session_state.get('current_tool')
        if old_tool != name:
            logger.info(f"Tool changed: {old_tool} -> {name}")
            st.session_state.current_tool = name
            st.session_state.show_add_option = False
            SessionManager.update_activity()

    @staticmethod
    def get_editor(tool: ToolConfig) -> EditorSession:
        """Editing session of a tool, created and loaded on first access."""
        sessions: Dict[str, EditorSession] = st.session_state.editor_sessions
        session = sessions.get(tool.name)
        if session is None:
            session = EditorSession(build_tool_store(tool))
            sessions[tool.name] = session
            logger.info(f"Created editing session for {tool.name}")
        session.ensure_loaded()
        return session

    @staticmethod
    def tools_with_unsaved_changes() -> List[str]:
        sessions: Dict[str, EditorSession] = st.session_state.get('editor_sessions', {})
        return [name for name, session in sessions.items()
                if session.manager.is_ready and session.manager.has_changes]

    @staticmethod
    def drop_editor(name: str):
        """Forget a tool's session so its files are read again from scratch."""
        st.session_state.editor_sessions.pop(name, None)

    @staticmethod
    def widget_key(tool: str, *parts: object) -> str:
        """
        Widget key scoped to a tool and its current revision.

        Bumping the revision after a reset, reload or save makes Streamlit
        drop the stale widget values and show the draft again.
        """
        revision = st.session_state.widget_revisions.get(tool, 0)
        suffix = "_".join(str(part) for part in parts)
        return f"{tool}_{revision}_{suffix}"

    @staticmethod
    def bump_revision(tool: str):
        revisions = st.session_state.widget_revisions
        revisions[tool] = revisions.get(tool, 0) + 1

    @staticmethod
    def update_activity():
        st.session_state.last_activity = datetime.now()
