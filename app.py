from __future__ import annotations
from datetime import datetime

import plotly.graph_objects as go
import streamlit as st

from medbuddy_core.errors import ErrorContext, error_boundary
from medbuddy_core.logging import setup_logging
from medbuddy_core.models import UserType
from medbuddy_core.offline import HealthDataService, SyncState, get_data_service

# ============================================================================
# PAGE CONFIGURATION
# ============================================================================
st.set_page_config(
    page_title="MedBuddy",
    page_icon="🩺",
    layout="wide",
)


@st.cache_resource
def _service() -> HealthDataService:
    service = get_data_service()
    setup_logging(level=service.settings.log_level)
    return service


service = _service()


def _show_result(result, success_message: str) -> None:
    if result:
        st.success(success_message)
    else:
        st.error(result.error)


def _format_time(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%b %d, %Y %I:%M %p")


# ============================================================================
# SIDEBAR - SYNC STATUS
# ============================================================================
def render_sync_status() -> None:
    status = service.get_sync_status()
    st.sidebar.markdown("### ☁️ Cloud Sync")

    if not service.is_sync_configured:
        st.sidebar.info("Not configured. Data is stored on this device only.")
        return

    if status.state == SyncState.SYNCING:
        st.sidebar.warning("Syncing...")
    elif status.state == SyncState.ERROR:
        st.sidebar.error(f"Sync failed: {status.error_message}")
    else:
        st.sidebar.success("Up to date")

    if status.last_sync:
        st.sidebar.caption(f"Last sync: {status.last_sync:%b %d, %I:%M %p}")

    if st.sidebar.button("Sync now", use_container_width=True):
        status = service.sync_from_cloud(force=True)
        if status.has_error:
            st.sidebar.error(status.error_message)
        st.rerun()


# ============================================================================
# PROFILES
# ============================================================================
def render_profiles() -> None:
    st.markdown("#### Household")

    with st.form("add_profile", clear_on_submit=True):
        col1, col2 = st.columns([3, 1])
        name = col1.text_input("Name")
        user_type = col2.selectbox("Type", [t.value for t in UserType])
        if st.form_submit_button("Add profile"):
            _show_result(service.save_user(name, user_type), f"Added {name}")

    for user in service.list_users():
        col1, col2, col3 = st.columns([3, 2, 1])
        latest = service.latest_temperature(user.id)
        col1.markdown(f"**{user.name}** · {user.type.value}")
        col2.metric("Latest", f"{latest:.1f}°F" if latest is not None else "—")
        if col3.button("Delete", key=f"del_user_{user.id}"):
            _show_result(service.delete_user(user.id), f"Deleted {user.name}")
            st.rerun()


# ============================================================================
# FEVER LOG
# ============================================================================
@error_boundary(error_message="Temperature chart unavailable")
def render_trend(user_id: str) -> None:
    df = service.fever_dataframe(user_id)
    if df.empty:
        st.info("No readings yet.")
        return

    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=df["time"],
        y=df["temperature"],
        mode="lines+markers",
        text=df["notes"],
        line=dict(color="#ef4444"),
    ))
    fig.add_hline(
        y=100.4,
        line_dash="dash",
        line_color="#94a3b8",
        annotation_text="Fever",
    )
    fig.update_layout(
        xaxis_title="Time",
        yaxis_title="Temperature (°F)",
        height=350,
        showlegend=False,
    )
    st.plotly_chart(fig, use_container_width=True)


def render_fever_log() -> None:
    users = service.list_users()
    if not users:
        st.info("Add a profile first.")
        return

    names = {u.id: u.name for u in users}
    user_id = st.selectbox("Profile", list(names), format_func=names.get, key="fever_user")

    with st.form("add_reading", clear_on_submit=True):
        col1, col2 = st.columns([1, 3])
        temperature = col1.number_input("Temperature (°F)", min_value=90.0, max_value=110.0, value=98.6, step=0.1)
        notes = col2.text_input("Notes")
        if st.form_submit_button("Log reading"):
            _show_result(
                service.save_fever_record(user_id, temperature, notes=notes),
                "Reading saved",
            )

    render_trend(user_id)

    for record in service.get_fever_records(user_id):
        col1, col2, col3 = st.columns([2, 4, 1])
        col1.markdown(f"**{record.temperature:.1f}°F**")
        col2.caption(f"{_format_time(record.timestamp)} {record.notes or ''}")
        if col3.button("Delete", key=f"del_fever_{record.id}"):
            service.delete_fever_record(record.id)
            st.rerun()


# ============================================================================
# PRESCRIPTIONS
# ============================================================================
def render_prescriptions() -> None:
    users = service.list_users()
    names = {u.id: u.name for u in users}

    if users:
        with st.form("add_prescription", clear_on_submit=True):
            col1, col2 = st.columns(2)
            user_id = col1.selectbox("For", list(names), format_func=names.get)
            medicine = col2.text_input("Medicine")
            illness = col1.text_input("Illness", placeholder="General")
            dosage = col2.text_input("Dosage")
            prescribed_by = col1.text_input("Prescribed by")
            notes = col2.text_input("Notes")
            if st.form_submit_button("Add prescription"):
                _show_result(
                    service.save_prescription(user_id, medicine, illness, dosage, prescribed_by, notes),
                    f"Added {medicine}",
                )

    query = st.text_input("Search", placeholder="Medicine, illness, doctor or name")
    for p in service.search_prescriptions(query):
        col1, col2, col3, col4 = st.columns([3, 3, 1, 1])
        col1.markdown(f"**{p.medicine_name}** {p.dosage}")
        col2.caption(f"{names.get(p.user_id, 'Unknown')} · {p.illness} · {p.prescribed_by}")
        label = "Active" if p.is_active else "Stopped"
        if col3.button(label, key=f"toggle_{p.id}"):
            service.toggle_prescription(p.id)
            st.rerun()
        if col4.button("Delete", key=f"del_rx_{p.id}"):
            service.delete_prescription(p.id)
            st.rerun()


# ============================================================================
# SETTINGS - BACKUP & CLOUD SYNC
# ============================================================================
def render_settings() -> None:
    st.markdown("#### Backup")
    st.download_button(
        "Export data",
        data=service.export_data(),
        file_name=service.backup_filename(),
        mime="application/json",
    )

    uploaded = st.file_uploader("Import backup", type=["json"])
    if uploaded is not None and st.button("Replace local data with this backup"):
        result = service.import_data(uploaded.getvalue())
        if result:
            counts = result.data
            st.success(
                f"Imported {counts['users']} profiles, {counts['feverLogs']} readings "
                f"and {counts['prescriptions']} prescriptions"
            )
        else:
            st.error(result.error)

    st.markdown("#### Cloud Sync")
    config = service.get_sync_config()
    with st.form("sync_config"):
        token = st.text_input("Access token", type="password")
        repo = st.text_input("Repository (owner/name)", value=config.repo if config else "")
        path = st.text_input("File path", value=config.path if config else "medbuddy/data.json")
        branch = st.text_input("Branch (optional)", value=(config.branch or "") if config else "")
        if st.form_submit_button("Save"):
            with ErrorContext("Saving cloud sync settings"):
                result = service.save_sync_config(
                    token or (config.token if config else ""),
                    repo,
                    path,
                    branch or None,
                )
                _show_result(result, "Cloud sync configured")

    if config and st.button("Test connection"):
        result = service.test_sync_connection()
        report = result.data if result else {"status": "error", "message": result.error}
        if report["status"] == "success":
            st.success(report["message"])
            if report.get("counts"):
                counts = report["counts"]
                st.caption(
                    f"Remote holds {counts['users']} profiles, {counts['feverLogs']} readings "
                    f"and {counts['prescriptions']} prescriptions"
                )
        else:
            st.error(report["message"])

    if config and st.button("Disconnect cloud sync"):
        service.clear_sync_config()
        st.rerun()


# ============================================================================
# LAYOUT
# ============================================================================
st.title("🩺 MedBuddy")
render_sync_status()

tab_profiles, tab_fever, tab_meds, tab_settings = st.tabs([
    "👪 Profiles",
    "🌡️ Fever Log",
    "💊 Prescriptions",
    "⚙️ Settings",
])

with tab_profiles:
    render_profiles()
with tab_fever:
    render_fever_log()
with tab_meds:
    render_prescriptions()
with tab_settings:
    render_settings()
