# civic_backend.py
# Thin wrappers around the Supabase client: auth, storage and the four tables
# (profiles, categories, reports, report_updates). Row-level security and
# column constraints live in the database; these helpers only forward calls
# and turn failures into BackendError with a message safe to show users.

import io
import os
import uuid
import logging
from typing import Callable, Optional

from PIL import Image, UnidentifiedImageError
from supabase import Client, ClientOptions, create_client

from access_gate import AuthSession, RoleLookupFailure, SessionLookupFailure
from civic_settings import Settings

logger = logging.getLogger(__name__)

CATEGORIES = ["pothole", "garbage", "streetlight", "water_leak", "other"]
STATUSES = ["pending", "in_progress", "resolved", "rejected"]
PRIORITIES = ["low", "medium", "high", "critical"]

CATEGORY_LABELS = {
    "pothole": "Pothole",
    "garbage": "Garbage",
    "streetlight": "Streetlight",
    "water_leak": "Water Leakage",
    "other": "Other",
}
STATUS_LABELS = {
    "pending": "Pending",
    "in_progress": "In Progress",
    "resolved": "Resolved",
    "rejected": "Rejected",
}

IMAGE_EXTENSIONS = {".jpg": "image/jpeg", ".jpeg": "image/jpeg", ".png": "image/png"}


class BackendError(Exception):
    """A backend call failed. `str(exc)` is safe to display."""


class InvalidImageError(BackendError):
    pass


def create_backend_client(settings: Settings) -> Client:
    options = ClientOptions(
        postgrest_client_timeout=settings.role_lookup_timeout,
        storage_client_timeout=int(max(settings.role_lookup_timeout, 10)),
    )
    return create_client(settings.supabase_url, settings.supabase_anon_key, options=options)


def to_auth_session(session) -> Optional[AuthSession]:
    """Convert a supabase-auth Session into the gate's AuthSession."""
    if session is None or getattr(session, "user", None) is None:
        return None
    return AuthSession(
        user_id=str(session.user.id),
        access_token=session.access_token or "",
        email=getattr(session.user, "email", None),
        expires_at=float(session.expires_at) if session.expires_at else None,
    )


def _check_choice(name: str, value: str, allowed) -> None:
    if value not in allowed:
        raise ValueError(f"Invalid {name} {value!r}; expected one of {', '.join(allowed)}")


# ---------------- AUTH ----------------

def sign_in(client: Client, email: str, password: str) -> AuthSession:
    try:
        response = client.auth.sign_in_with_password({"email": email, "password": password})
    except Exception as exc:
        logger.info("Sign in failed for %s: %s", email, exc)
        raise BackendError("Invalid email or password") from exc
    session = to_auth_session(response.session)
    if session is None:
        raise BackendError("Sign in did not return a session. Confirm your email first.")
    return session


def send_magic_link(client: Client, email: str) -> None:
    try:
        client.auth.sign_in_with_otp({"email": email})
    except Exception as exc:
        logger.error("Magic link request failed for %s: %s", email, exc)
        raise BackendError("Could not send the login link. Try again later.") from exc


def verify_email_code(client: Client, email: str, code: str) -> AuthSession:
    """Finish a passwordless sign-in with the one-time code from the login e-mail."""
    try:
        response = client.auth.verify_otp({"email": email, "token": code.strip(), "type": "email"})
    except Exception as exc:
        logger.info("Login code rejected for %s: %s", email, exc)
        raise BackendError("Invalid or expired login code") from exc
    session = to_auth_session(response.session)
    if session is None:
        raise BackendError("Invalid or expired login code")
    return session


def sign_up(client: Client, email: str, password: str, full_name: str = "") -> Optional[AuthSession]:
    """Create an account. Returns a session unless e-mail confirmation is pending."""
    try:
        response = client.auth.sign_up({
            "email": email,
            "password": password,
            "options": {"data": {"full_name": full_name}},
        })
    except Exception as exc:
        logger.error("Sign up failed for %s: %s", email, exc)
        raise BackendError("Could not create the account. The e-mail may already be registered.") from exc
    return to_auth_session(response.session)


def sign_out(client: Client) -> None:
    try:
        client.auth.sign_out()
    except Exception as exc:
        logger.error("Sign out failed: %s", exc)
        raise BackendError("Sign out failed") from exc


def get_current_user(client: Client) -> Optional[dict]:
    """Return {'id', 'email'} for the signed-in user, or None."""
    try:
        response = client.auth.get_user()
    except Exception as exc:
        logger.warning("Fetching current user failed: %s", exc)
        return None
    if response is None or response.user is None:
        return None
    return {"id": str(response.user.id), "email": response.user.email}


class SupabaseSessionProvider:
    """Exposes the Supabase auth client as a session provider for AccessGate."""

    def __init__(self, client: Client):
        self._client = client

    def current_session(self) -> Optional[AuthSession]:
        try:
            return to_auth_session(self._client.auth.get_session())
        except Exception as exc:
            raise SessionLookupFailure(str(exc)) from exc

    def subscribe(self, callback: Callable[[Optional[AuthSession]], None]) -> Callable[[], None]:
        def on_change(event, session):
            logger.debug("Auth event %s", event)
            callback(to_auth_session(session))

        subscription = self._client.auth.on_auth_state_change(on_change)
        return subscription.unsubscribe

    def sign_out(self) -> None:
        sign_out(self._client)


class SupabaseRoleResolver:
    """Reads profiles.role for a user id. None when the profile row is missing."""

    def __init__(self, client: Client):
        self._client = client

    def __call__(self, user_id: str) -> Optional[str]:
        try:
            response = self._client.table("profiles").select("role").eq("id", user_id).limit(1).execute()
        except Exception as exc:
            raise RoleLookupFailure(str(exc)) from exc
        rows = response.data or []
        if not rows:
            return None
        return rows[0].get("role")


# ---------------- STORAGE ----------------

def upload_image(client: Client, bucket: str, user_id: str, uploaded_file) -> str:
    """Upload a jpg/png to `bucket` under the user's folder and return its public URL.

    `uploaded_file` is any object with `.name` and `.getvalue()` (Streamlit's
    UploadedFile qualifies).
    """
    ext = os.path.splitext(uploaded_file.name)[1].lower()
    if ext not in IMAGE_EXTENSIONS:
        raise InvalidImageError("Only .jpg, .jpeg and .png images are accepted")
    data = uploaded_file.getvalue()
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise InvalidImageError("The uploaded file is not a readable image") from exc

    path = f"{user_id}/{uuid.uuid4()}{ext}"
    storage = client.storage.from_(bucket)
    try:
        storage.upload(path=path, file=data, file_options={"content-type": IMAGE_EXTENSIONS[ext]})
    except Exception as exc:
        logger.error("Image upload to %s/%s failed: %s", bucket, path, exc)
        raise BackendError("Image upload failed") from exc
    return storage.get_public_url(path)


def delete_image(client: Client, bucket: str, public_url: str) -> bool:
    """Remove an image previously returned by upload_image. Returns False if it could not be removed."""
    marker = f"/{bucket}/"
    if marker not in public_url:
        logger.warning("Not a %s URL, leaving it alone: %s", bucket, public_url)
        return False
    path = public_url.split(marker, 1)[1].split("?", 1)[0]
    try:
        client.storage.from_(bucket).remove([path])
    except Exception as exc:
        logger.error("Removing %s/%s failed: %s", bucket, path, exc)
        return False
    return True


# ---------------- TABLES ----------------

def _execute(query, action: str):
    try:
        return query.execute().data or []
    except Exception as exc:
        logger.error("Failed to %s: %s", action, exc)
        raise BackendError(f"Failed to {action}") from exc


def fetch_profile(client: Client, user_id: str) -> Optional[dict]:
    rows = _execute(client.table("profiles").select("*").eq("id", user_id).limit(1), "load profile")
    return rows[0] if rows else None


def list_categories(client: Client) -> list:
    return _execute(client.table("categories").select("*").order("name"), "load categories")


def category_labels(client: Client) -> dict:
    """Display names for CATEGORIES, taken from the categories table when it has them."""
    labels = dict(CATEGORY_LABELS)
    for row in list_categories(client):
        if row.get("id") in labels and row.get("name"):
            labels[row["id"]] = row["name"]
    return labels


def list_reports(client: Client, author_id: Optional[str] = None, status: Optional[str] = None) -> list:
    query = client.table("reports").select("*")
    if author_id:
        query = query.eq("author_id", author_id)
    if status:
        _check_choice("status", status, STATUSES)
        query = query.eq("status", status)
    return _execute(query.order("created_at", desc=True), "load reports")


def create_report(client: Client, author_id: str, title: str, description: str, category: str,
                  address: str, latitude: Optional[float] = None, longitude: Optional[float] = None,
                  priority: str = "medium", image_url: Optional[str] = None) -> dict:
    _check_choice("category", category, CATEGORIES)
    _check_choice("priority", priority, PRIORITIES)
    row = {
        "author_id": author_id,
        "title": title,
        "description": description,
        "category": category,
        "status": "pending",
        "priority": priority,
        "address": address,
        "latitude": latitude,
        "longitude": longitude,
        "image_url": image_url,
    }
    rows = _execute(client.table("reports").insert(row), "submit report")
    return rows[0] if rows else row


def submit_report(client: Client, bucket: str, author_id: str, title: str, description: str,
                  category: str, address: str, latitude: Optional[float] = None,
                  longitude: Optional[float] = None, priority: str = "medium",
                  uploaded_file=None) -> dict:
    """Upload the optional photo, then insert the report.

    If the insert fails the uploaded photo is removed again before the error
    propagates.
    """
    _check_choice("category", category, CATEGORIES)
    _check_choice("priority", priority, PRIORITIES)
    image_url = None
    if uploaded_file is not None:
        image_url = upload_image(client, bucket, author_id, uploaded_file)
    try:
        return create_report(client, author_id, title, description, category, address,
                             latitude=latitude, longitude=longitude, priority=priority,
                             image_url=image_url)
    except BackendError:
        if image_url:
            delete_image(client, bucket, image_url)
        raise


def update_report(client: Client, report_id: str, status: Optional[str] = None,
                  priority: Optional[str] = None) -> dict:
    changes = {}
    if status is not None:
        _check_choice("status", status, STATUSES)
        changes["status"] = status
    if priority is not None:
        _check_choice("priority", priority, PRIORITIES)
        changes["priority"] = priority
    if not changes:
        raise ValueError("Nothing to update")
    rows = _execute(client.table("reports").update(changes).eq("id", report_id), "update report")
    return rows[0] if rows else changes


def list_report_updates(client: Client, report_id: str, include_internal: bool = False) -> list:
    query = client.table("report_updates").select("*").eq("report_id", report_id)
    if not include_internal:
        query = query.eq("is_internal", False)
    return _execute(query.order("created_at"), "load comments")


def add_report_update(client: Client, report_id: str, author_id: str, message: str,
                      is_internal: bool = False) -> dict:
    message = (message or "").strip()
    if not message:
        raise ValueError("Comment cannot be empty")
    row = {
        "report_id": report_id,
        "author_id": author_id,
        "message": message,
        "is_internal": is_internal,
    }
    rows = _execute(client.table("report_updates").insert(row), "add comment")
    return rows[0] if rows else row
