# admin_dashboard.py
# Staff-facing Streamlit app. Everything below the header renders only when
# the AccessGate reports AUTHORIZED (profile role admin or staff).
#
# Run: streamlit run admin_dashboard.py

import logging

import streamlit as st

import civic_analytics as analytics
import civic_backend as backend
from access_gate import GateState
from civic_app_state import get_client, get_gate, require_settings
from civic_settings import ADMIN_TITLE
from civic_validation import validate_email

logger = logging.getLogger(__name__)

STATUS_BADGES = {
    "pending": "🔴",
    "in_progress": "🟡",
    "resolved": "🟢",
    "rejected": "⚪",
}
VIEWS = ["Reports", "Map", "Analytics"]


# ---------------- ACCESS SCREENS ----------------

def sign_in_screen(client, gate):
    st.header("Admin Access")
    notice = st.session_state.get("gate_notices", {}).pop("signed_out", None)
    if notice:
        st.info(notice)
    st.write("Please sign in with an admin account to access the dashboard.")
    code_tab, password_tab = st.tabs(["Email code", "Password"])

    with code_tab:
        with st.form("magic_link_form"):
            email = st.text_input("Email address", placeholder="your@email.com")
            send = st.form_submit_button("Send login code")
        if send:
            if not validate_email(email):
                st.error("Invalid email format")
            else:
                try:
                    backend.send_magic_link(client, email)
                except backend.BackendError as e:
                    st.error(str(e))
                else:
                    st.session_state.pending_login_email = email
                    st.success("Check your email for the login code!")

        pending_email = st.session_state.get("pending_login_email")
        if pending_email:
            with st.form("verify_code_form"):
                code = st.text_input(f"Code sent to {pending_email}")
                verify = st.form_submit_button("Sign in")
            if verify:
                try:
                    session = backend.verify_email_code(client, pending_email, code)
                except backend.BackendError as e:
                    st.error(str(e))
                else:
                    st.session_state.pending_login_email = None
                    gate.handle_session_change(session)
                    st.rerun()

    with password_tab:
        with st.form("admin_login_form"):
            email = st.text_input("Email", key="admin_login_email")
            password = st.text_input("Password", type="password", key="admin_login_password")
            submitted = st.form_submit_button("Login")
        if submitted:
            try:
                session = backend.sign_in(client, email, password)
            except backend.BackendError as e:
                st.error(str(e))
            else:
                logger.info("Dashboard sign-in for %s", session.user_id)
                gate.handle_session_change(session)
                st.rerun()


def pending_screen():
    st.header("Admin Access")
    st.info("Checking your permissions...")
    if st.button("Refresh"):
        st.rerun()


def denied_screen(gate):
    st.header("Access Denied")
    st.error("You do not have permission to access the admin dashboard.")
    if gate.lookup_timed_out:
        st.caption("The permission check timed out. Sign out and sign in again to retry.")
    if st.button("Sign Out"):
        gate.sign_out()
        st.rerun()


# ---------------- VIEWS ----------------

def reports_view(client, user_id, reports):
    st.subheader("Reports Management")
    if not reports:
        st.info("No reports found.")
        return

    for row in reports:
        status = row.get("status")
        label = f"{STATUS_BADGES.get(status, '')} {row.get('title', '')} — {backend.STATUS_LABELS.get(status, status)}"
        with st.expander(label):
            st.write(row.get("description", ""))
            st.caption(f"📍 {row.get('address', '')} | 📂 {backend.CATEGORY_LABELS.get(row.get('category'), row.get('category'))} "
                       f"| 👤 {row.get('author_id', '')} | Posted: {row.get('created_at', '')}")
            if row.get("image_url"):
                st.image(row["image_url"], width=300)

            cols = st.columns([2, 2, 1])
            new_status = cols[0].selectbox(
                "Status", backend.STATUSES,
                index=backend.STATUSES.index(status) if status in backend.STATUSES else 0,
                format_func=backend.STATUS_LABELS.get, key="status_" + row["id"])
            priority = row.get("priority")
            new_priority = cols[1].selectbox(
                "Priority", backend.PRIORITIES,
                index=backend.PRIORITIES.index(priority) if priority in backend.PRIORITIES else 1,
                key="priority_" + row["id"])
            if cols[2].button("Save", key="save_" + row["id"]):
                backend.update_report(client, row["id"], status=new_status, priority=new_priority)
                st.success("Saved")
                st.rerun()

            st.markdown("**Updates**")
            for update in backend.list_report_updates(client, row["id"], include_internal=True):
                tag = "🔒 internal" if update.get("is_internal") else "public"
                st.caption(f"{update.get('created_at', '')} | {tag}")
                st.write(update.get("message", ""))
            with st.form("note_" + row["id"]):
                message = st.text_area("Add update", key="note_text_" + row["id"])
                internal = st.checkbox("Internal (staff only)", value=True, key="note_internal_" + row["id"])
                if st.form_submit_button("Post"):
                    try:
                        backend.add_report_update(client, row["id"], user_id, message, is_internal=internal)
                    except (ValueError, backend.BackendError) as e:
                        st.error(str(e))
                    else:
                        st.rerun()

    st.download_button("⬇️ Export Reports CSV", data=analytics.reports_frame(reports).to_csv(index=False),
                       file_name="reports.csv", mime="text/csv")


def _change_status(client, report_id):
    new_status = st.session_state["map_status_" + report_id]
    try:
        backend.update_report(client, report_id, status=new_status)
    except backend.BackendError as e:
        st.session_state.map_error = str(e)


def map_view(client, reports):
    st.subheader("Reports Map")
    points = analytics.mappable_reports(reports)
    if points.empty:
        st.info("No reports with coordinates yet.")
    else:
        st.map(points[["latitude", "longitude"]], latitude="latitude", longitude="longitude")

    error = st.session_state.pop("map_error", None)
    if error:
        st.error(error)

    for row in reports:
        cols = st.columns([4, 2])
        cols[0].markdown(f"**{row.get('title', '')}**  \n{row.get('address', '')}")
        status = row.get("status")
        cols[1].selectbox(
            "Status", backend.STATUSES,
            index=backend.STATUSES.index(status) if status in backend.STATUSES else 0,
            format_func=backend.STATUS_LABELS.get, key="map_status_" + row["id"],
            on_change=_change_status, args=(client, row["id"]), label_visibility="collapsed")


def analytics_view(reports):
    st.subheader("Analytics Dashboard")
    counts = analytics.status_counts(reports)
    cols = st.columns(5)
    cols[0].metric("Total Reports", counts["total"])
    cols[1].metric("Pending", counts["pending"])
    cols[2].metric("In Progress", counts["in_progress"])
    cols[3].metric("Resolved", counts["resolved"])
    cols[4].metric("Rejected", counts["rejected"])

    if not reports:
        st.info("No data for analytics yet.")
        return
    left, right = st.columns(2)
    left.plotly_chart(analytics.status_figure(reports), use_container_width=True)
    right.plotly_chart(analytics.category_figure(reports), use_container_width=True)
    st.plotly_chart(analytics.trend_figure(reports), use_container_width=True)


def dashboard(client, gate):
    session = gate.session
    if session is None:
        st.rerun()
    user = backend.get_current_user(client) or {"id": session.user_id, "email": session.email}

    header, nav_col = st.columns([3, 2])
    with header:
        st.title(ADMIN_TITLE)
        st.caption(f"{user.get('email') or user['id']} ({gate.role or 'unverified role'})")
    with nav_col:
        view = st.radio("View", VIEWS, horizontal=True, key="active_view")
        if st.button("Sign Out"):
            gate.sign_out()
            st.rerun()

    try:
        reports = backend.list_reports(client)
        if view == "Reports":
            reports_view(client, user["id"], reports)
        elif view == "Map":
            map_view(client, reports)
        else:
            analytics_view(reports)
    except backend.BackendError as e:
        st.error(str(e))


# ---------------- ROUTER ----------------

def main():
    st.set_page_config(page_title=ADMIN_TITLE, page_icon="🛠️", layout="wide")
    settings = require_settings()
    client = get_client(settings)
    gate = get_gate(client, settings)

    state = gate.state
    if state is GateState.UNAUTHENTICATED:
        sign_in_screen(client, gate)
    elif state is GateState.PENDING_AUTHORIZATION:
        pending_screen()
    elif state is GateState.DENIED:
        denied_screen(gate)
    else:
        dashboard(client, gate)


if __name__ == "__main__":
    main()
