"""
Main Streamlit application for the tool configuration editor.
Schema-driven editing of CLI tool settings with a confirm-before-save diff.
"""

import streamlit as st
import json
import logging

from config_editor.config_loader import (
    ToolConfig,
    configure_logging,
    get_config_value,
    get_tool_configs,
)
from config_editor.diff_utils import format_diff_for_display, format_value, json_equal, summarize_diff
from config_editor.draft_state import DraftStateManager, FieldDescriptor, LoadState
from config_editor.exceptions import ConfigEditorError, log_error_with_context
from config_editor.save_orchestrator import EditorSession, SaveStatus
from config_editor.schema_utils import CUSTOM_FIELD_TYPES
from config_editor.session_manager import SessionManager
from config_editor.side_channels import EnvMapChannel, KeyValueChannel, SecretChannel
from config_editor.ui_feedback import Notify, show_error

# Configure logging dynamically from config
try:
    configure_logging()
    logger = logging.getLogger(__name__)
except Exception as e:
    logging.basicConfig(level=logging.INFO)
    logger = logging.getLogger(__name__)
    logger.error(f"Failed to configure logging from config: {e}, using INFO level")

page_title = get_config_value('ui', 'page_title', 'Tool Configuration')

# Page configuration
st.set_page_config(
    page_title=page_title,
    page_icon="📋",
    layout="wide",
    initial_sidebar_state="expanded"
)


def main():
    """Main application entry point."""
    try:
        SessionManager.initialize()
        tools = get_tool_configs()

        render_header()
        tool = render_sidebar(tools)
        if tool is None:
            st.info("No tools configured. Add a `tools` section to config.yaml.")
            return

        render_tool(tool)

    except ConfigEditorError as e:
        log_error_with_context(e, "rendering the editor")
        show_error(e)
    except Exception as e:
        st.error(f"Unexpected error: {str(e)}")
        logger.error(f"Unexpected error in application: {e}", exc_info=True)


def render_header():
    st.title(f"📋 {page_title}")


def render_sidebar(tools):
    """Render the tool selector; returns the selected tool definition."""
    with st.sidebar:
        st.header(get_config_value('ui', 'sidebar_title', 'Tools'))

        if not tools:
            return None

        names = [tool.name for tool in tools]
        current = SessionManager.get_current_tool()
        index = names.index(current) if current in names else 0
        unsaved = set(SessionManager.tools_with_unsaved_changes())

        selected = st.radio(
            "Select Tool:",
            options=names,
            index=index,
            format_func=lambda name: next(
                f"{t.display_title}{' •' if name in unsaved else ''}" for t in tools if t.name == name
            ),
        )
        SessionManager.set_current_tool(selected)
        tool = tools[names.index(selected)]

        if tool.description:
            st.caption(tool.description)
        st.caption(f"📁 {tool.settings_path}")

        st.divider()
        render_session_actions(tool)

        return tool


def render_session_actions(tool: ToolConfig):
    """Reload and reset buttons for the selected tool."""
    session = SessionManager.get_editor(tool)
    manager = session.manager

    st.header("Quick Actions")
    if st.button("🔄 Reload from Disk", disabled=manager.saving,
                 help="Discard the draft and read the files again"):
        state = manager.reload()
        SessionManager.bump_revision(tool.name)
        session.orchestrator.cancel_save()
        if state == LoadState.READY:
            Notify.success(f"Reloaded {tool.display_title}")
        st.rerun()

    if st.button("↩️ Reset Draft", disabled=not manager.is_ready,
                 help="Discard unsaved edits"):
        manager.reset_draft()
        session.orchestrator.cancel_save()
        SessionManager.bump_revision(tool.name)
        Notify.info("Draft reset to the saved configuration")
        st.rerun()


def render_tool(tool: ToolConfig):
    """Render the editing area of one tool."""
    session = SessionManager.get_editor(tool)
    manager = session.manager

    st.subheader(f"⚙️ {tool.display_title}")

    if manager.state == LoadState.ERROR:
        show_error(manager.error)
        if st.button("🔄 Retry", key=SessionManager.widget_key(tool.name, 'retry')):
            manager.reload()
            st.rerun()
        return

    if not manager.is_ready:
        st.info("Loading configuration...")
        return

    render_fields(tool, manager)
    render_add_option(tool, manager)

    for channel in manager.side_channels:
        st.divider()
        render_side_channel(tool, channel)

    render_save_section(tool, session)


# ---------------------------------------------------------------------------
# Primary settings
# ---------------------------------------------------------------------------

def render_fields(tool: ToolConfig, manager: DraftStateManager):
    fields = manager.fields()
    if not fields:
        st.info("This configuration has no options yet. Add one below.")
        return

    for descriptor in fields:
        with st.container(border=True):
            cols = st.columns([4, 1])
            with cols[0]:
                st.markdown(f"**{descriptor.key}** · `{descriptor.type_label}`")
                st.caption(descriptor.description)
                render_field_input(tool, manager, descriptor)
            with cols[1]:
                if st.button("🗑️ Delete", key=SessionManager.widget_key(tool.name, 'delete', descriptor.key)):
                    manager.delete_key(descriptor.key)
                    SessionManager.bump_revision(tool.name)
                    st.rerun()


def _as_number(value):
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0


def render_field_input(tool: ToolConfig, manager: DraftStateManager, descriptor: FieldDescriptor):
    """Pick an input widget from the field's effective type."""
    key = SessionManager.widget_key(tool.name, 'field', descriptor.key)
    value = descriptor.value
    field_type = descriptor.effective_type
    shown = value

    if descriptor.is_compound:
        render_compound_input(manager, descriptor, key)
        return

    if descriptor.options:
        options = list(descriptor.options)
        index = next((i for i, option in enumerate(options) if json_equal(option, value)), None)
        if index is None and isinstance(value, str) and value:
            options.insert(0, value)
            index = 0
        new_value = st.selectbox("Value", options, index=index, key=key, format_func=format_value,
                                 label_visibility="collapsed")
    elif field_type == 'boolean':
        shown = bool(value)
        new_value = st.toggle("Enabled", value=shown, key=key)
    elif field_type == 'integer':
        shown = int(_as_number(value))
        new_value = int(st.number_input("Value", value=shown, step=1, key=key,
                                        label_visibility="collapsed"))
    elif field_type == 'number':
        shown = float(_as_number(value))
        new_value = st.number_input("Value", value=shown, key=key, label_visibility="collapsed")
        if isinstance(value, int) and float(new_value).is_integer():
            new_value = int(new_value)
    elif descriptor.is_secret:
        shown = "" if value is None else str(value)
        new_value = st.text_input("Value", value=shown, type="password",
                                  key=key, label_visibility="collapsed")
    else:
        shown = "" if value is None else str(value)
        new_value = st.text_input("Value", value=shown, key=key,
                                  label_visibility="collapsed")

    # Values coerced for display are only written back once the user edits them
    if new_value is not None and not json_equal(new_value, shown):
        manager.set_value(descriptor.key, new_value)


def render_compound_input(manager: DraftStateManager, descriptor: FieldDescriptor, key: str):
    """Objects and arrays are edited as JSON text."""
    text = st.text_area("JSON", value=format_value(descriptor.value), key=key, height=160,
                        label_visibility="collapsed")
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        st.error(f"Invalid JSON: {e.msg} (line {e.lineno}, column {e.colno})")
        return

    expected = dict if descriptor.effective_type == 'object' else list
    if not isinstance(parsed, expected):
        st.error(f"{descriptor.key} must be a JSON {descriptor.effective_type}")
        return
    if parsed != descriptor.value:
        manager.set_value(descriptor.key, parsed)


def render_add_option(tool: ToolConfig, manager: DraftStateManager):
    """Add a known option from the schema or a custom one."""
    with st.expander("➕ Add Option", expanded=st.session_state.show_add_option):
        keyword = st.text_input("Search options", key=SessionManager.widget_key(tool.name, 'search'))
        options = manager.schema_options(keyword)

        if options:
            for option in options[:50]:
                cols = st.columns([4, 1])
                with cols[0]:
                    st.markdown(f"**{option.key}** · `{option.type_label}`")
                    st.caption(option.description)
                with cols[1]:
                    if st.button("Added" if option.already_exists else "Add",
                                 key=SessionManager.widget_key(tool.name, 'add', option.key),
                                 disabled=option.already_exists):
                        Notify.show(manager.add_key(option.key, option.schema))
                        st.session_state.show_add_option = True
                        SessionManager.bump_revision(tool.name)
                        st.rerun()
        elif manager.schema_root:
            st.caption("No matching options in the schema")

        st.markdown("**Custom option**")
        cols = st.columns([3, 2, 1])
        with cols[0]:
            custom_key = st.text_input("Name", key=SessionManager.widget_key(tool.name, 'custom_key'))
        with cols[1]:
            custom_type = st.selectbox("Type", CUSTOM_FIELD_TYPES,
                                       key=SessionManager.widget_key(tool.name, 'custom_type'))
        with cols[2]:
            st.write("")
            if st.button("Add", key=SessionManager.widget_key(tool.name, 'custom_add')):
                notice = manager.add_key(custom_key, field_type=custom_type)
                Notify.show(notice)
                if not notice.is_problem:
                    st.session_state.show_add_option = True
                    SessionManager.bump_revision(tool.name)
                    st.rerun()


# ---------------------------------------------------------------------------
# Side channels
# ---------------------------------------------------------------------------

def render_side_channel(tool: ToolConfig, channel):
    if isinstance(channel, SecretChannel):
        render_secret_channel(tool, channel)
    elif isinstance(channel, EnvMapChannel):
        render_env_channel(tool, channel)
    elif isinstance(channel, KeyValueChannel):
        render_key_value_channel(tool, channel)
    else:
        logger.warning(f"No renderer for side channel {channel.name}")


def render_secret_channel(tool: ToolConfig, channel: SecretChannel):
    st.markdown(f"**🔑 {channel.path}**")
    value = st.text_input("Secret", value=channel.value, type="password",
                          key=SessionManager.widget_key(tool.name, 'secret', channel.name),
                          help="Leave empty to remove the secret")
    if value != channel.value:
        channel.set_value(value)


def render_env_channel(tool: ToolConfig, channel: EnvMapChannel):
    st.markdown(f"**🌱 {tool.env_file}**")
    for env_field in channel.fields:
        current = channel.get(env_field.env_name)
        value = st.text_input(
            env_field.env_name,
            value=current,
            type="password" if env_field.secret else "default",
            key=SessionManager.widget_key(tool.name, 'env', env_field.env_name),
        )
        if value != current:
            channel.set_field(env_field.env_name, value)


def render_key_value_channel(tool: ToolConfig, channel: KeyValueChannel):
    st.markdown(f"**🗂️ {channel.document}**")
    st.caption("Values that look like JSON (objects, arrays, numbers, true/false/null) are stored as JSON.")

    for index, entry in enumerate(channel.entries):
        cols = st.columns([2, 4, 1])
        with cols[0]:
            key = st.text_input("Key", value=entry.key, label_visibility="collapsed",
                                key=SessionManager.widget_key(tool.name, 'kv_key', index))
        with cols[1]:
            value = st.text_input("Value", value=entry.value, label_visibility="collapsed",
                                  key=SessionManager.widget_key(tool.name, 'kv_value', index))
        with cols[2]:
            if st.button("🗑️", key=SessionManager.widget_key(tool.name, 'kv_remove', index)):
                channel.remove_entry(index)
                SessionManager.bump_revision(tool.name)
                st.rerun()
        if key != entry.key or value != entry.value:
            channel.update_entry(index, key=key, value=value)

    if st.button("➕ Add Entry", key=SessionManager.widget_key(tool.name, 'kv_add')):
        channel.add_entry()
        st.rerun()

    if channel.error:
        st.error(channel.error)


# ---------------------------------------------------------------------------
# Save
# ---------------------------------------------------------------------------

def render_save_section(tool: ToolConfig, session: EditorSession):
    """Save button, diff confirmation and the confirm/cancel actions."""
    orchestrator = session.orchestrator
    st.divider()

    if st.button("💾 Save", type="primary", disabled=not orchestrator.can_save,
                 key=SessionManager.widget_key(tool.name, 'save')):
        request = orchestrator.request_save()
        if request.status == SaveStatus.BLOCKED:
            st.error(f"❌ {request.error}")
        elif request.notice:
            Notify.show(request.notice)

    pending = orchestrator.pending
    if pending is None:
        return

    render_diff_section(pending.diffs)

    col1, col2, _ = st.columns([1, 1, 2])
    with col1:
        if st.button("✅ Confirm Save", type="primary", disabled=orchestrator.is_saving,
                     key=SessionManager.widget_key(tool.name, 'confirm')):
            confirm_save(tool, session)
    with col2:
        if st.button("❌ Cancel", key=SessionManager.widget_key(tool.name, 'cancel')):
            orchestrator.cancel_save()
            st.rerun()


def render_diff_section(diffs):
    """Render the changes about to be written."""
    st.subheader("🔍 Changes Preview")
    summary = summarize_diff(diffs)
    if summary['total']:
        st.caption(f"{summary['added']} added · {summary['removed']} removed · {summary['changed']} changed")
    st.markdown(format_diff_for_display(diffs))


def confirm_save(tool: ToolConfig, session: EditorSession):
    """Write the drafts; failures keep the confirmation open for a retry."""
    with st.spinner("Saving..."):
        result = session.orchestrator.confirm_save()

    Notify.show(result.notice)
    if result.success:
        SessionManager.bump_revision(tool.name)
        st.rerun()
    elif session.orchestrator.pending is None:
        # the shown diff no longer matches the drafts
        st.rerun()
    else:
        st.error(f"❌ {result.error}")


if __name__ == "__main__":
    main()
