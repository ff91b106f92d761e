"""
Streamlit UI Pages - Páginas de la interfaz
Thin screens over the service container.
"""

import os
import tempfile
from datetime import date, timedelta
from typing import Optional

import pandas as pd
import streamlit as st

from workforce.container import Container, build_container
from workforce.security import SessionContext
from workforce.services import KioskStep


# =============================================================================
# Session State Helpers
# =============================================================================

@st.cache_resource
def get_container(master_key: str) -> Container:
    """One container per master key for the whole server process."""
    return build_container(master_key=master_key)


def current_container() -> Optional[Container]:
    master_key = st.session_state.get("master_key") or os.environ.get("MASTER_KEY")
    if not master_key:
        return None
    return get_container(master_key)


def get_current_session() -> Optional[SessionContext]:
    return st.session_state.get("session")


def is_logged_in() -> bool:
    return get_current_session() is not None


def logout():
    for key in ("session", "master_key", "kiosk"):
        st.session_state.pop(key, None)


def _denied():
    st.error("No tiene permisos para ver esta página")


def _money(value) -> str:
    return f"$ {float(value):,.2f}"


# =============================================================================
# Login Page
# =============================================================================

def render_login_page():
    st.title("🔐 Gestión de personal")

    with st.form("login_form"):
        master_key = st.text_input("Clave maestra", type="password",
                                   value=st.session_state.get("master_key", ""))
        username = st.text_input("Usuario")
        password = st.text_input("Contraseña", type="password")
        submitted = st.form_submit_button("Ingresar", use_container_width=True)

    if not submitted:
        return
    if not master_key:
        st.error("Ingrese la clave maestra")
        return

    try:
        container = get_container(master_key)
    except ValueError as e:
        st.error(str(e))
        return

    st.session_state["master_key"] = master_key

    if not container.auth.is_initialized():
        success, message = container.auth.initialize_system(username, password)
        if not success:
            st.error(message)
            return
        container.payroll.seed_default_concepts()
        st.success("Sistema inicializado. Ingrese con el usuario creado.")
        return

    success, context, message = container.auth.login(username, password)
    if success:
        st.session_state["session"] = context
        st.rerun()
    else:
        st.error(message)


# =============================================================================
# Dashboard
# =============================================================================

def render_dashboard_page(container: Container, ctx: SessionContext):
    st.title("📊 Tablero")
    st.write(f"Bienvenido, **{ctx.username}** ({ctx.role.value})")

    stats = container.system.get_dashboard_stats()
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Empleados activos", stats["active_employees"])
    col2.metric("Presentes hoy", stats["present_today"])
    col3.metric("Vacaciones pendientes", stats["pending_vacations"])
    col4.metric("Fotos por revisar", stats["pending_facial_photos"])

    latest = stats["latest_payroll"]
    if latest and ctx.can("liquidaciones.view"):
        st.info(f"Última liquidación: {latest['period']} - neto {_money(latest['total_net'])}")


# =============================================================================
# PIN Kiosk
# =============================================================================

def render_kiosk_page(container: Container):
    st.title("🕒 Fichero por PIN")

    kiosk = st.session_state.get("kiosk")
    if kiosk is None:
        kiosk = container.kiosk_session()
        st.session_state["kiosk"] = kiosk

    if kiosk.last_result is not None:
        (st.success if kiosk.last_result.ok else st.error)(kiosk.last_result.message)

    if kiosk.step == KioskStep.SEARCH:
        query = st.text_input("Buscar por nombre o legajo")
        for emp in kiosk.search(query):
            label = f"{emp['full_name']} ({emp['legajo'] or '-'})"
            if not emp["has_pin"]:
                st.button(f"{label} - sin PIN", key=f"emp_{emp['id']}", disabled=True)
            elif st.button(label, key=f"emp_{emp['id']}"):
                kiosk.select(emp["id"])
                st.rerun()

    elif kiosk.step == KioskStep.PIN:
        st.subheader(kiosk.employee["full_name"])
        pin = st.text_input("PIN", type="password", max_chars=kiosk.MAX_PIN_LENGTH)
        col1, col2 = st.columns(2)
        if col1.button("Continuar", use_container_width=True):
            kiosk.clear_pin()
            for digit in pin:
                kiosk.press_digit(digit)
            kiosk.submit_pin()
            st.rerun()
        if col2.button("Volver", use_container_width=True):
            kiosk.back()
            st.rerun()

    elif kiosk.step == KioskStep.PHOTO:
        st.subheader(kiosk.employee["full_name"])
        snapshot = st.camera_input("Foto de verificación")
        if snapshot is not None:
            kiosk.capture_photo(snapshot.getvalue())
        col1, col2 = st.columns(2)
        if col1.button("Confirmar fichaje", use_container_width=True, disabled=snapshot is None):
            with st.spinner("Registrando..."):
                kiosk.confirm()
            st.rerun()
        if col2.button("Volver", use_container_width=True):
            kiosk.back()
            st.rerun()

    elif kiosk.step == KioskStep.DONE:
        if st.button("Siguiente empleado", use_container_width=True):
            kiosk.reset()
            st.rerun()


# =============================================================================
# Attendance
# =============================================================================

def render_attendance_page(container: Container, ctx: SessionContext):
    st.title("📅 Fichajes")

    if ctx.can("fichado.reports"):
        tab_daily, tab_employee = st.tabs(["Diario", "Por empleado"])
        with tab_daily:
            day = st.date_input("Día", value=date.today(), key="daily_day")
            search = st.text_input("Filtrar por nombre o legajo", key="daily_search")
            rows = container.attendance.daily_report(day, search)
            if rows:
                df = pd.DataFrame(rows)[["employee_name", "legajo", "event_type", "local_time", "method", "has_photo"]]
                st.dataframe(df, use_container_width=True)
            else:
                st.info("Sin fichajes")
        employee_id = None
        with tab_employee:
            employees = container.employees.list_employees(active=True)
            options = {e["full_name"]: e["id"] for e in employees}
            if options:
                employee_id = options[st.selectbox("Empleado", list(options))]
            _render_day_report(container, ctx, employee_id)
    elif ctx.employee_id is not None:
        _render_day_report(container, ctx, ctx.employee_id)
    else:
        _denied()


def _render_day_report(container: Container, ctx: SessionContext, employee_id: Optional[int]):
    if employee_id is None:
        return
    col1, col2 = st.columns(2)
    start = col1.date_input("Desde", value=date.today() - timedelta(days=30))
    end = col2.date_input("Hasta", value=date.today())

    groups = container.attendance.employee_day_report(employee_id, start, end)
    st.metric("Horas en el período", round(sum(g.total_hours for g in groups), 1))
    for group in groups:
        with st.expander(f"{group.day:%d/%m/%Y} - {group.total_hours}h trabajadas"):
            st.table(pd.DataFrame([
                {"Tipo": e.event_type.value, "Método": e.method.value, "Hora": e.timestamp}
                for e in group.events
            ]))

    if groups and ctx.can("fichado.reports") and st.button("Exportar CSV"):
        path = os.path.join(tempfile.gettempdir(), f"fichajes_{employee_id}_{start}_{end}.csv")
        ok, message, path, _ = container.exports.export_attendance_report(employee_id, start, end, path, ctx.username)
        if ok:
            with open(path, "rb") as f:
                st.download_button("Descargar", f.read(), file_name=os.path.basename(path), mime="text/csv")
        else:
            st.error(message)


# =============================================================================
# Payroll
# =============================================================================

def render_payroll_page(container: Container, ctx: SessionContext):
    st.title("💰 Liquidación de sueldos")
    if not ctx.can("liquidaciones.view"):
        _denied()
        return

    if ctx.can("liquidaciones.process"):
        with st.form("payroll_form"):
            today = date.today()
            col1, col2 = st.columns(2)
            year = col1.number_input("Año", min_value=2000, max_value=2100, value=today.year)
            month = col2.number_input("Mes", min_value=1, max_value=12, value=today.month)
            if st.form_submit_button("Procesar liquidación"):
                ok, message, _ = container.payroll.process_period(int(year), int(month), ctx.username, ctx=ctx)
                (st.success if ok else st.error)(message)

    runs = container.payroll.list_runs()
    if not runs:
        st.info("No hay liquidaciones")
        return

    st.dataframe(pd.DataFrame(runs), use_container_width=True)
    labels = {run["period"]: run["id"] for run in runs}
    run_id = labels[st.selectbox("Liquidación", list(labels))]
    receipts = container.exports.payroll_dataframe(run_id)
    st.dataframe(receipts, use_container_width=True)

    if ctx.can("liquidaciones.export") and st.button("Exportar Excel"):
        path = os.path.join(tempfile.gettempdir(), f"liquidacion_{run_id}.xlsx")
        ok, message, path, _ = container.exports.export_payroll_summary(run_id, path, ctx.username)
        if ok:
            with open(path, "rb") as f:
                st.download_button("Descargar", f.read(), file_name=os.path.basename(path))
        else:
            st.error(message)


# =============================================================================
# PIN administration
# =============================================================================

def render_pin_admin_page(container: Container, ctx: SessionContext):
    st.title("🔢 Administración de PINs")
    if not ctx.can("fichado.manage_pins"):
        _denied()
        return

    status = container.pins.list_status()
    st.dataframe(pd.DataFrame(status), use_container_width=True)

    col1, col2 = st.columns(2)
    if col1.button("Generar PINs faltantes"):
        ok, message, generated = container.pins.generate_bulk(ctx.username, ctx=ctx)
        (st.success if ok else st.error)(message)
        if generated:
            names = {s["employee_id"]: s["full_name"] for s in status}
            st.warning("Entregue estos PINs ahora; no se volverán a mostrar")
            st.table(pd.DataFrame([{"Empleado": names.get(k, k), "PIN": v} for k, v in generated.items()]))
    if col2.button("Restablecer PINs al DNI"):
        ok, message, _ = container.pins.reset_from_dni(ctx.username, ctx=ctx)
        (st.success if ok else st.error)(message)

    options = {s["full_name"]: s["employee_id"] for s in status}
    if not options:
        return
    employee_id = options[st.selectbox("Empleado", list(options))]
    with st.form("set_pin_form"):
        new_pin = st.text_input("Nuevo PIN", type="password", max_chars=6)
        if st.form_submit_button("Guardar PIN"):
            ok, message = container.pins.set_pin(employee_id, new_pin, ctx.username)
            (st.success if ok else st.error)(message)
    if st.button("Desbloquear PIN"):
        ok, message = container.pins.unlock(employee_id, ctx.username)
        (st.success if ok else st.error)(message)


# =============================================================================
# Employees
# =============================================================================

def render_employees_page(container: Container, ctx: SessionContext):
    st.title("👥 Empleados")
    if not ctx.can("empleados.view"):
        _denied()
        return

    employees = container.employees.list_employees(active=True)
    st.dataframe(pd.DataFrame(employees), use_container_width=True)

    branches = container.employees.list_branches()
    if ctx.can("empleados.edit") and employees and branches:
        with st.form("reassign_form"):
            names = {e["full_name"]: e["id"] for e in employees}
            selected = st.multiselect("Empleados", list(names))
            branch_names = {b["name"]: b["id"] for b in branches}
            branch = st.selectbox("Sucursal destino", list(branch_names))
            if st.form_submit_button("Reasignar"):
                ok, message, _ = container.employees.reassign_branch(
                    [names[n] for n in selected], branch_names[branch], ctx.username)
                (st.success if ok else st.error)(message)

    if ctx.can("empleados.create"):
        uploaded = st.file_uploader("Importar planilla", type=["xlsx", "csv"])
        if uploaded is not None and st.button("Importar"):
            if uploaded.name.endswith(".csv"):
                df = pd.read_csv(uploaded, dtype=str)
            else:
                df = pd.read_excel(uploaded, dtype=str)
            ok, message, _ = container.employees.import_employees(df, ctx.username)
            (st.success if ok else st.error)(message)


# =============================================================================
# Vacations and rewards
# =============================================================================

def render_vacations_page(container: Container, ctx: SessionContext):
    st.title("🏖️ Vacaciones")
    if ctx.employee_id is None:
        st.info("El usuario no está vinculado a un empleado")
        return

    balance = container.vacations.balance(ctx.employee_id, date.today().year)
    if balance:
        col1, col2, col3 = st.columns(3)
        col1.metric("Corresponden", balance["entitled"])
        col2.metric("Usados", balance["used"])
        col3.metric("Disponibles", balance["available"])

    with st.form("vacation_form"):
        start = st.date_input("Desde")
        end = st.date_input("Hasta")
        if st.form_submit_button("Solicitar"):
            ok, message, _ = container.vacations.request(ctx.employee_id, start, end, ctx.username)
            (st.success if ok else st.error)(message)

    requests = container.vacations.list_requests(ctx.employee_id)
    if requests:
        st.dataframe(pd.DataFrame(requests), use_container_width=True)


def render_rewards_page(container: Container, ctx: SessionContext):
    st.title("🎁 Premios")
    summary = container.rewards.budget_summary()
    if ctx.can("premios.manage"):
        col1, col2, col3 = st.columns(3)
        col1.metric("Presupuesto del mes", _money(summary["current_month"]))
        col2.metric("Disponible", _money(summary["available_month"]))
        col3.metric("Utilizado", f"{summary['used_percentage']}%")

    prizes = container.rewards.list_prizes()
    if ctx.employee_id is not None:
        st.write(f"Sus puntos: **{container.rewards.points_balance(ctx.employee_id)}**")
    for prize in prizes:
        stock = "ilimitado" if prize["stock"] is None else prize["stock"]
        cols = st.columns([3, 1])
        cols[0].write(f"{prize['name']} - {prize['cost']} puntos (stock {stock})")
        if ctx.employee_id is not None and cols[1].button("Canjear", key=f"prize_{prize['id']}"):
            ok, message, _ = container.rewards.redeem_prize(ctx.employee_id, prize["id"], ctx.username)
            (st.success if ok else st.error)(message)


# =============================================================================
# Audit log
# =============================================================================

def render_audit_log_page(container: Container, ctx: SessionContext):
    st.title("📋 Auditoría")
    if not ctx.can("sistema.view_logs"):
        _denied()
        return

    logs = container.system.get_audit_logs(limit=200)
    st.dataframe(pd.DataFrame(logs), use_container_width=True)
