# civic_app_state.py
# Per-browser-session wiring for the Streamlit apps. Each visitor gets their
# own backend client (the auth session lives inside it) and, in the admin
# dashboard, their own AccessGate.

import logging

import streamlit as st

from access_gate import AccessGate, FailurePolicy, GateState
from civic_backend import SupabaseRoleResolver, SupabaseSessionProvider, create_backend_client
from civic_settings import ConfigurationError, Settings, configure_logging, load_settings

logger = logging.getLogger(__name__)


@st.cache_resource
def get_settings() -> Settings:
    settings = load_settings()
    configure_logging(settings.log_level)
    logger.info("Loaded settings for environment %s", settings.environment)
    return settings


def require_settings() -> Settings:
    try:
        return get_settings()
    except ConfigurationError as e:
        st.error(f"Configuration error: {e}")
        st.stop()


def get_client(settings: Settings):
    if "backend_client" not in st.session_state:
        st.session_state.backend_client = create_backend_client(settings)
    return st.session_state.backend_client


def build_gate(client, settings: Settings) -> AccessGate:
    policy = FailurePolicy.FAIL_OPEN if settings.gate_fail_open else FailurePolicy.FAIL_CLOSED
    if policy is FailurePolicy.FAIL_OPEN:
        logger.warning("Access gate running fail-open (%s environment)", settings.environment)
    return AccessGate(
        SupabaseSessionProvider(client),
        SupabaseRoleResolver(client),
        policy=policy,
        timeout=settings.role_lookup_timeout,
    )


SIGNED_OUT_NOTICE = "You have been signed out. Please sign in again."


def session_end_notifier(notices: dict):
    """Gate listener leaving a notice when a signed-in user drops back to the sign-in screen.

    `notices` is a plain dict so auth callbacks on other threads can write it.
    """
    previous = {"state": GateState.UNAUTHENTICATED}

    def on_change(state: GateState) -> None:
        if state is GateState.UNAUTHENTICATED and previous["state"] in (GateState.AUTHORIZED, GateState.DENIED):
            notices["signed_out"] = SIGNED_OUT_NOTICE
        previous["state"] = state

    return on_change


def get_gate(client, settings: Settings) -> AccessGate:
    if "access_gate" not in st.session_state:
        st.session_state.gate_notices = {}
        gate = build_gate(client, settings)
        gate.add_listener(session_end_notifier(st.session_state.gate_notices))
        gate.start()
        st.session_state.access_gate = gate
    return st.session_state.access_gate
