"""
Workforce - Gestión de personal
Main Streamlit Application Entry Point
"""

import streamlit as st

st.set_page_config(
    page_title="Gestión de personal",
    page_icon="🕒",
    layout="wide",
    initial_sidebar_state="expanded",
)

from workforce.core.exceptions import PermissionDeniedError
from workforce.ui import (
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


PAGES = {
    "📊 Tablero": render_dashboard_page,
    "📅 Fichajes": render_attendance_page,
    "💰 Liquidación": render_payroll_page,
    "🔢 PINs": render_pin_admin_page,
    "👥 Empleados": render_employees_page,
    "🏖️ Vacaciones": render_vacations_page,
    "🎁 Premios": render_rewards_page,
    "📋 Auditoría": render_audit_log_page,
}


def main():
    """Main application entry point."""
    with st.sidebar:
        st.title("🕒 Gestión de personal")
        mode = st.radio("Modo", ["Administración", "Fichero PIN"], label_visibility="collapsed")

    if mode == "Fichero PIN":
        container = current_container()
        if container is None:
            st.warning("El fichero necesita la clave maestra. Ingrese primero en Administración.")
            return
        render_kiosk_page(container)
        return

    if not is_logged_in():
        render_login_page()
        return

    container = current_container()
    ctx = get_current_session()

    with st.sidebar:
        st.divider()
        st.write(f"👤 {ctx.username}")
        st.write(f"🔑 {ctx.role.value}")
        st.divider()
        page = st.radio("Navegación", list(PAGES), label_visibility="collapsed")
        st.divider()
        if st.button("🚪 Cerrar sesión", use_container_width=True):
            logout()
            st.rerun()

    try:
        PAGES[page](container, ctx)
    except PermissionDeniedError as e:
        st.error(f"⛔ {e}")


if __name__ == "__main__":
    main()
