# citizen_portal.py
# Citizen-facing Streamlit app: sign in or sign up, report civic issues with a
# photo and location, and follow the status of your own reports.
#
# Run: streamlit run citizen_portal.py

import logging

import streamlit as st

import civic_backend as backend
from access_gate import SessionLookupFailure
from civic_app_state import get_client, require_settings
from civic_settings import APP_SUB, APP_TITLE
from civic_validation import find_duplicates, report_errors, signup_errors, validate_email
from priority_suggester import load_priority_model, suggest_priority

logger = logging.getLogger(__name__)

PER_PAGE = 6


@st.cache_resource
def get_priority_model(path: str):
    return load_priority_model(path)


# ---------------- UI HELPERS ----------------

def render_header():
    st.title(f"📍 {APP_TITLE}")
    st.caption(APP_SUB)


def render_report(row):
    st.markdown(f"### {row.get('title', '')}")
    st.write(row.get("description", ""))
    caption = (f"📍 {row.get('address', '')} | 📂 {backend.CATEGORY_LABELS.get(row.get('category'), row.get('category'))} | "
               f"🕒 {row.get('created_at', '')} | Status: {backend.STATUS_LABELS.get(row.get('status'), row.get('status'))}")
    st.caption(caption)
    if row.get("image_url"):
        st.image(row["image_url"], width=300)


# ---------------- AUTH (SIGNUP / LOGIN) ----------------

def login_ui(client):
    st.subheader("🔐 Login")
    with st.form("login_form"):
        email = st.text_input("Email", key="login_email")
        password = st.text_input("Password", type="password", key="login_password")
        submitted = st.form_submit_button("Login")

    if submitted:
        if not validate_email(email):
            st.error("Invalid email format")
            return
        try:
            session = backend.sign_in(client, email, password)
        except backend.BackendError as e:
            st.error(str(e))
            return
        st.session_state.user = session
        st.rerun()


def signup_ui(client):
    st.subheader("🆕 Create an account")
    with st.form("signup_form"):
        col1, col2 = st.columns(2)
        with col1:
            full_name = st.text_input("Full name", key="signup_name")
            email = st.text_input("Email", key="signup_email")
            confirm_email = st.text_input("Confirm Email", key="signup_confirm_email")
        with col2:
            password = st.text_input("Password", type="password", key="signup_password")
            confirm_password = st.text_input("Confirm Password", type="password", key="signup_confirm_password")
        submitted = st.form_submit_button("Signup")

    if submitted:
        errors = signup_errors(email, confirm_email, password, confirm_password)
        if errors:
            for e in errors:
                st.error(e)
            return
        try:
            session = backend.sign_up(client, email, password, full_name=full_name)
        except backend.BackendError as e:
            st.error(str(e))
            return
        if session is None:
            st.info("Account created. Check your email to confirm it, then log in.")
            return
        # auto-login after signup
        st.session_state.user = session
        st.success("Account created and logged in!")
        st.rerun()


def login_signup(client):
    render_header()
    st.markdown("## 🔑 Login or Signup")
    tabs = st.tabs(["Login", "Signup"])
    with tabs[0]:
        login_ui(client)
    with tabs[1]:
        signup_ui(client)


# ---------------- PAGES ----------------

def home_page(client):
    st.subheader("📌 Recent Issues")
    col1, col2, col3 = st.columns([3, 2, 1])
    with col1:
        q = st.text_input("Search title, description or address")
    with col2:
        cats = st.multiselect("Category", options=backend.CATEGORIES, format_func=backend.CATEGORY_LABELS.get)
    with col3:
        st.write(" ")
        if st.button("Refresh"):
            st.rerun()

    reports = backend.list_reports(client)
    if q:
        needle = q.lower()
        reports = [r for r in reports
                   if any(needle in str(r.get(f) or "").lower() for f in ("title", "description", "address"))]
    if cats:
        reports = [r for r in reports if r.get("category") in cats]

    if not reports:
        st.info("No reports yet.")
        return
    total = len(reports)
    page = st.number_input("Page", min_value=1, max_value=max(1, (total - 1) // PER_PAGE + 1), value=1)
    start = (page - 1) * PER_PAGE
    for row in reports[start:start + PER_PAGE]:
        render_report(row)


def report_issue_page(client, settings, user):
    st.subheader("📝 Report a Civic Issue")
    labels = backend.category_labels(client)
    with st.form("report_form"):
        title = st.text_input("Issue Title")
        description = st.text_area("Description")
        category = st.selectbox("Category", backend.CATEGORIES, format_func=labels.get)
        address = st.text_input("Address")
        add_coords = st.checkbox("Add map coordinates")
        col1, col2 = st.columns(2)
        latitude = col1.number_input("Latitude", min_value=-90.0, max_value=90.0, value=0.0, format="%.6f")
        longitude = col2.number_input("Longitude", min_value=-180.0, max_value=180.0, value=0.0, format="%.6f")
        uploaded_file = st.file_uploader("Upload Image", type=["png", "jpg", "jpeg"])
        override_priority = st.checkbox("Set priority manually (optional)")
        priority_manual = st.selectbox("Priority", backend.PRIORITIES, index=1)
        submitted = st.form_submit_button("Submit Report")

    if not submitted:
        return
    if not add_coords:
        latitude = longitude = None
    errors = report_errors(title, description, address, latitude, longitude)
    if errors:
        for e in errors:
            st.error(e)
        return

    priority = priority_manual if override_priority else suggest_priority(
        get_priority_model(settings.priority_model_path), description)
    try:
        # duplicate check
        if find_duplicates(backend.list_reports(client), title, address):
            st.warning("⚠️ Similar report already exists. It will still be saved.")
        backend.submit_report(client, settings.storage_bucket, user.user_id, title.strip(), description.strip(),
                              category, address.strip(), latitude, longitude, priority=priority,
                              uploaded_file=uploaded_file)
    except backend.BackendError as e:
        st.error(str(e))
        return
    st.success("✅ Report submitted successfully!")
    if not override_priority:
        st.info(f"Suggested priority: **{priority}**")


def my_reports_page(client, user):
    st.subheader("📂 My Reports")
    reports = backend.list_reports(client, author_id=user.user_id)
    if not reports:
        st.info("No reports yet.")
        return
    for row in reports:
        status = backend.STATUS_LABELS.get(row.get("status"), row.get("status"))
        with st.expander(f"{row.get('title', '')} — {status}"):
            render_report(row)
            st.markdown("**Updates**")
            for update in backend.list_report_updates(client, row["id"]):
                st.caption(f"{update.get('created_at', '')}")
                st.write(update.get("message", ""))
            with st.form(f"comment_{row['id']}"):
                message = st.text_area("Add a comment", key=f"comment_text_{row['id']}")
                if st.form_submit_button("Post"):
                    try:
                        backend.add_report_update(client, row["id"], user.user_id, message)
                    except (ValueError, backend.BackendError) as e:
                        st.error(str(e))
                    else:
                        st.rerun()


def gallery_page(client):
    st.subheader("🖼️ Gallery of Issues")
    imgs = [r for r in backend.list_reports(client) if r.get("image_url")]
    if not imgs:
        st.info("No images available.")
        return
    cols = st.columns(3)
    for i, row in enumerate(imgs):
        with cols[i % 3]:
            st.image(row["image_url"],
                     caption=f"{row.get('title', '')} — {row.get('address', '')}\nStatus: {backend.STATUS_LABELS.get(row.get('status'), row.get('status'))}",
                     use_container_width=True)


# ---------------- MAIN APP ----------------

def display_name(client, user) -> str:
    try:
        profile = backend.fetch_profile(client, user.user_id)
    except backend.BackendError:
        profile = None
    if profile and profile.get("full_name"):
        return profile["full_name"]
    return ""


def main_app(client, settings):
    user = st.session_state.user

    with st.sidebar:
        st.markdown(f"### 👋 Welcome {display_name(client, user)}")
        st.caption(user.email or user.user_id)
        if st.button("🚪 Logout"):
            try:
                backend.sign_out(client)
            except backend.BackendError as e:
                logger.warning("Logout failed, clearing local session: %s", e)
            st.session_state.user = None
            st.rerun()
        st.markdown("---")
        nav = st.radio("Navigation", ["Home", "Report Issue", "My Reports", "Gallery"])

    try:
        if nav == "Home":
            home_page(client)
        elif nav == "Report Issue":
            report_issue_page(client, settings, user)
        elif nav == "My Reports":
            my_reports_page(client, user)
        elif nav == "Gallery":
            gallery_page(client)
    except backend.BackendError as e:
        st.error(str(e))


def main():
    st.set_page_config(page_title=APP_TITLE, page_icon="📍", layout="wide")
    settings = require_settings()
    client = get_client(settings)

    if "user" not in st.session_state:
        st.session_state.user = None

    user = st.session_state.user
    if user is not None and user.is_expired():
        # the client refreshes the token if it still can
        try:
            refreshed = backend.SupabaseSessionProvider(client).current_session()
        except SessionLookupFailure as e:
            logger.warning("Session refresh failed: %s", e)
            refreshed = None
        if refreshed is None or refreshed.user_id != user.user_id or refreshed.is_expired():
            logger.info("Session for %s expired", user.user_id)
            st.session_state.user = None
            st.warning("Your session expired. Please log in again.")
        else:
            st.session_state.user = refreshed

    if st.session_state.user:
        main_app(client, settings)
    else:
        login_signup(client)


if __name__ == "__main__":
    main()
