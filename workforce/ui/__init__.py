"""
UI module - Interfaz
Streamlit pages over the service container.
"""

from .pages import (
    current_container,
    get_current_session,
    is_logged_in,
    logout,
    render_login_page,
    render_dashboard_page,
    render_kiosk_page,
    render_attendance_page,
    render_payroll_page,
    render_pin_admin_page,
    render_employees_page,
    render_vacations_page,
    render_rewards_page,
    render_audit_log_page,
)

__all__ = [
    "current_container",
    "get_current_session",
    "is_logged_in",
    "logout",
    "render_login_page",
    "render_dashboard_page",
    "render_kiosk_page",
    "render_attendance_page",
    "render_payroll_page",
    "render_pin_admin_page",
    "render_employees_page",
    "render_vacations_page",
    "render_rewards_page",
    "render_audit_log_page",
]
