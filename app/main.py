"""
Streamlit Frontend for the Credit Note Console

The screen the accounts desk uses to issue credit notes to parties and
to look after the master data behind them.

DESIGN PRINCIPLES:
1. Figures are shown live before anything is issued
2. Explicit confirmation before a number is reserved
3. Clear error messages in simple language
4. Visual feedback for all operations
5. No hidden actions

The UI enforces the issuance boundaries:
- Preview never consumes a number
- "Issue" reserves, renders, sends and audits in one step
- A failed issuance tells the user which number was burnt
"""

import asyncio
from decimal import Decimal

import streamlit as st

from creditnote.config import get_settings, validate_all_settings
from creditnote.engine import (
    business_today,
    custom_period,
    format_inr,
    format_round_off,
    group_indian,
    rupees_in_words,
)
from creditnote.errors import CreditNoteError, DispatchError, InvalidInputError
from creditnote.models import (
    CompanyProfile,
    CreditNoteRequest,
    CreditNoteTemplate,
    DispatchRecipient,
    Party,
    PeriodMode,
)
from creditnote.orchestrator import (
    CreditNoteRegister,
    CreditNoteWorkflow,
    MasterDataFlow,
    create_app_components,
)
from creditnote.reports import (
    dashboard_summary,
    filter_notes,
    monthly_report,
    top_parties,
    whatsapp_share_link,
)


# Page configuration
st.set_page_config(
    page_title="Credit Note Console",
    page_icon="🧾",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .success-box {
        padding: 20px;
        background-color: #d4edda;
        border-radius: 10px;
        border-left: 5px solid #28a745;
        margin: 10px 0;
    }
    .error-box {
        padding: 20px;
        background-color: #f8d7da;
        border-radius: 10px;
        border-left: 5px solid #dc3545;
        margin: 10px 0;
    }
    .big-number {
        font-size: 2.5em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    try:
        return create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(use_storage=False)


def main():
    """Main application entry point."""
    components = get_components()

    st.sidebar.title("🧾 Credit Note Console")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        [
            "🧾 Create Credit Note",
            "📊 Dashboard",
            "📈 Reports",
            "👥 Parties",
            "📑 Templates",
            "⚙️ Settings",
            "📜 Audit Log",
        ],
        index=0,
    )

    if page == "🧾 Create Credit Note":
        render_create_page(components.workflow, components.master_data)
    elif page == "📊 Dashboard":
        render_dashboard_page(components.register, components.master_data)
    elif page == "📈 Reports":
        render_reports_page(components.register)
    elif page == "👥 Parties":
        render_parties_page(components.master_data, components.register)
    elif page == "📑 Templates":
        render_templates_page(components.master_data)
    elif page == "⚙️ Settings":
        render_settings_page(components.master_data)
    elif page == "📜 Audit Log":
        render_audit_page(components.audit_logger)


def render_create_page(workflow: CreditNoteWorkflow, master_data: MasterDataFlow):
    """Render the Create Credit Note form."""
    st.title("🧾 Create Credit Note")
    settings = get_settings().document

    parties = run_async(master_data.list_parties())
    templates = run_async(master_data.list_templates())

    if not parties:
        st.info("No parties yet. Add parties on the 'Parties' page or upload a workbook.")
        return

    try:
        next_number = workflow.allocator.format_number(
            run_async(workflow.allocator.preview_next())
        )
        st.markdown(f"Next credit note number (advisory): **{next_number}**")
    except CreditNoteError as e:
        st.warning(f"Could not read the credit note counter: {e}")

    # Template loading
    template = st.selectbox(
        "Load Template (optional)",
        options=[None] + templates,
        format_func=lambda t: "None" if t is None else f"{t.name} ({t.party_name})",
    )

    party_index = 0
    if template is not None:
        party_index = next(
            (i for i, p in enumerate(parties) if p.id == template.party_id), 0
        )

    col1, col2 = st.columns(2)

    with col1:
        party = st.selectbox(
            "Party *",
            options=parties,
            index=party_index,
            format_func=lambda p: f"{p.name} ({p.city})" if p.city else p.name,
        )
        party_email = st.text_input(
            "Party Email",
            value=party.email or "",
            help="Saved against the party when it differs",
        )
        issue_date = st.date_input("Credit Note Date *", value=business_today(settings.business_timezone))

    with col2:
        mode = st.radio(
            "Scheme Period",
            options=list(PeriodMode),
            format_func=lambda m: {
                PeriodMode.QUARTER: "Previous Quarter",
                PeriodMode.MONTH: "Previous Month",
                PeriodMode.CUSTOM: "Custom",
            }[m],
            horizontal=True,
        )
        period = None
        if mode == PeriodMode.CUSTOM:
            c1, c2 = st.columns(2)
            period_from = c1.date_input("From", value=issue_date)
            period_to = c2.date_input("To", value=issue_date)
            label = st.text_input("Month / Period Label")
            try:
                period = custom_period(period_from, period_to, label)
            except InvalidInputError as e:
                st.warning(str(e))

        net_sales = st.number_input(
            "Net Sales Amount (Excluding GST) *",
            min_value=0.0,
            step=1000.0,
            format="%.2f",
        )
        percentage = st.number_input(
            "CN Percentage *",
            min_value=0.0,
            max_value=100.0,
            value=float(template.cn_percentage) if template else 0.0,
            step=0.25,
            format="%.2f",
        )

    purpose = st.text_area(
        "Purpose *",
        value=template.purpose if template else settings.default_purpose,
        max_chars=500,
    )

    if mode == PeriodMode.CUSTOM and period is None:
        return

    try:
        request = CreditNoteRequest(
            party=party,
            issue_date=issue_date,
            period_mode=mode,
            custom_period=period,
            purpose=purpose,
            base_amount=str(net_sales),
            percentage=str(percentage),
            party_email=party_email or None,
        )
        resolved, breakdown = workflow.compute(request)
    except (CreditNoteError, ValueError) as e:
        st.error(str(e))
        return

    # Live figures
    st.markdown("---")
    st.markdown(f"**Scheme Period:** {resolved.period_from} to {resolved.period_to} ({resolved.label})")
    c1, c2, c3 = st.columns(3)
    c1.metric("Credit Amount", format_inr(breakdown.credit_amount))
    c2.metric("Round Off", format_round_off(breakdown.round_off))
    c3.metric("Final Amount", format_inr(breakdown.final_amount))
    st.caption(rupees_in_words(breakdown.final_amount))

    with st.expander("💾 Save as Template"):
        template_name = st.text_input("Template Name")
        if st.button("Save Template") and template_name:
            try:
                run_async(master_data.save_template(CreditNoteTemplate(
                    name=template_name,
                    party_id=party.id or "",
                    party_name=party.name,
                    purpose=purpose,
                    cn_percentage=str(percentage),
                )))
                st.success(f"Template '{template_name}' saved.")
            except Exception as e:
                st.error(f"Could not save template: {e}")

    col1, col2 = st.columns(2)
    with col1:
        if st.button("👁️ Preview"):
            try:
                artifact = run_async(workflow.preview(request))
                st.download_button(
                    "Download Preview PDF",
                    data=artifact.content,
                    file_name=artifact.filename,
                    mime=artifact.media_type,
                )
            except CreditNoteError as e:
                st.error(str(e))

    with col2:
        confirmed = st.checkbox("I have checked the figures and want to issue this credit note")
        if st.button("✅ Issue Credit Note", type="primary", disabled=not confirmed):
            with st.spinner("Issuing credit note... Please wait."):
                try:
                    outcome = run_async(workflow.issue(request))
                except DispatchError as e:
                    st.markdown(f"""
                    <div class="error-box">
                        <h4>❌ Sending Failed</h4>
                        <p>{e}</p>
                        <p>The reserved number was not used and has been recorded in the audit log.</p>
                    </div>
                    """, unsafe_allow_html=True)
                    return
                except CreditNoteError as e:
                    st.error(str(e))
                    return

            record = outcome.record
            st.markdown(f"""
            <div class="success-box">
                <h4>✅ Credit Note {record.cn_number} processed successfully!</h4>
                <p>{record.party.name}: ₹{group_indian(record.breakdown.final_amount)}</p>
            </div>
            """, unsafe_allow_html=True)
            st.download_button(
                "Download Printer Copy",
                data=outcome.print_artifact.content,
                file_name=outcome.print_artifact.filename,
                mime=outcome.print_artifact.media_type,
            )


def render_dashboard_page(register: CreditNoteRegister, master_data: MasterDataFlow):
    """Render the dashboard with this month's figures and the register."""
    st.title("📊 Dashboard")

    try:
        notes = run_async(register.list_notes())
    except Exception as e:
        st.error(
            "Failed to fetch credit notes. Please ensure the Apps Script URL is "
            f"correctly configured and deployed. ({e})"
        )
        return

    today = business_today(get_settings().document.business_timezone)
    summary = dashboard_summary(notes, today)

    c1, c2, c3 = st.columns(3)
    c1.metric("Total CNs (This Month)", summary.count_this_month)
    c2.metric("Total Amount (This Month)", f"₹{group_indian(int(summary.amount_this_month))}")
    c3.metric("Average Amount (This Month)", f"₹{group_indian(int(summary.average_this_month))}")

    col1, col2 = st.columns(2)
    with col1:
        st.markdown("#### Last 6 Months")
        st.bar_chart(
            [{"Month": m.label, "Amount": float(m.amount)} for m in summary.monthly_totals],
            x="Month",
            y="Amount",
        )
    with col2:
        st.markdown("#### Top Parties")
        for entry in summary.top_parties:
            st.markdown(f"- {entry.name}: ₹{group_indian(int(entry.amount))}")

    st.markdown("---")
    st.markdown("### Credit Notes")
    col1, col2, col3 = st.columns(3)
    search = col1.text_input("Search", placeholder="CN number, party or purpose")
    date_from = col2.date_input("From", value=None)
    date_to = col3.date_input("To", value=None)

    company_name = run_async(master_data.get_profile()).name

    for note in filter_notes(notes, search, date_from, date_to):
        with st.expander(f"{note.cn_number} · {note.issue_date} · {note.party_name} · ₹{group_indian(int(note.final_amount))}"):
            st.markdown(f"**Purpose:** {note.purpose}")
            st.markdown(f"**Period:** {note.month}")
            if note.pdf_link:
                st.markdown(f"[View PDF]({note.pdf_link})")
            c1, c2, c3 = st.columns(3)
            if c1.button("Resend to Party", key=f"party-{note.cn_number}"):
                _resend(register, note, DispatchRecipient.PARTY)
            if c2.button("Resend to Head Office", key=f"ho-{note.cn_number}"):
                _resend(register, note, DispatchRecipient.HEAD_OFFICE)
            number = c3.text_input("WhatsApp", value=note.party_whatsapp or "", key=f"wa-{note.cn_number}")
            if number:
                c3.link_button("Share on WhatsApp", whatsapp_share_link(note, number, company_name))


def _resend(register: CreditNoteRegister, note, recipient: DispatchRecipient) -> None:
    target = note.party_name if recipient == DispatchRecipient.PARTY else "Head Office"
    try:
        run_async(register.resend(note, recipient))
        st.success(f"Credit note resent to {target}.")
    except Exception as e:
        st.error(f"Action failed: {e}")


def render_reports_page(register: CreditNoteRegister):
    """Render the 12-month report."""
    st.title("📈 Reports")

    try:
        notes = run_async(register.list_notes())
    except Exception as e:
        st.error(f"Failed to fetch credit notes: {e}")
        return

    today = business_today(get_settings().document.business_timezone)
    months = monthly_report(notes, today)

    col1, col2 = st.columns(2)
    with col1:
        st.markdown("#### Monthly Amount")
        st.bar_chart([{"Month": m.label, "Amount": float(m.amount)} for m in months], x="Month", y="Amount")
    with col2:
        st.markdown("#### Monthly Count")
        st.bar_chart([{"Month": m.label, "Count": m.count} for m in months], x="Month", y="Count")

    st.markdown("#### Top 10 Parties")
    ranked = top_parties(notes)
    if not ranked:
        st.info("No data available.")
    for entry in ranked:
        st.markdown(f"- **{entry.name}**: ₹{group_indian(int(entry.amount))} ({entry.count} notes)")


def _party_form(party: Party, key: str):
    """Editable party fields; returns the edited party or None if invalid."""
    name = st.text_input("Name *", value=party.name, key=f"{key}-name")
    address1 = st.text_input("Address 1", value=party.address1, key=f"{key}-a1")
    address2 = st.text_input("Address 2", value=party.address2, key=f"{key}-a2")
    city = st.text_input("City", value=party.city, key=f"{key}-city")
    email = st.text_input("Email", value=party.email or "", key=f"{key}-email")
    whatsapp = st.text_input("WhatsApp", value=party.whatsapp_number or "", key=f"{key}-wa")
    gstin = st.text_input("GSTIN", value=party.gstin or "", key=f"{key}-gstin")
    try:
        return Party(
            id=party.id,
            name=name,
            address1=address1,
            address2=address2,
            city=city,
            email=email or None,
            whatsapp_number=whatsapp or None,
            gstin=gstin or None,
        )
    except ValueError as e:
        st.warning(str(e))
        return None


def render_parties_page(master_data: MasterDataFlow, register: CreditNoteRegister):
    """Render party CRUD and the workbook upload."""
    st.title("👥 Parties")

    parties = run_async(master_data.list_parties())
    search = st.text_input("Search parties").strip().lower()

    with st.expander("➕ Add Party"):
        new_party = _party_form(Party(name="New Party"), "new")
        if st.button("Add Party") and new_party:
            run_async(master_data.save_party(new_party))
            st.success(f"Party '{new_party.name}' added.")
            st.rerun()

    for party in parties:
        if search and search not in party.name.lower() and search not in party.city.lower():
            continue
        with st.expander(f"{party.name} · {party.city}"):
            edited = _party_form(party, party.id or party.name)
            c1, c2, c3 = st.columns(3)
            if c1.button("Save", key=f"save-{party.id}") and edited:
                run_async(master_data.save_party(edited))
                st.success("Party updated.")
            if c2.button("Delete", key=f"delete-{party.id}"):
                run_async(master_data.delete_party(party))
                st.rerun()
            if c3.button("Ledger", key=f"ledger-{party.id}"):
                for note in run_async(register.notes_for_party(party.name)):
                    st.markdown(f"- {note.cn_number} · {note.issue_date} · ₹{group_indian(int(note.final_amount))}")

    st.markdown("---")
    st.markdown("### Upload Party Data")
    st.warning("This will completely replace all existing party data with the content of your file.")
    uploaded = st.file_uploader("Party workbook (.xlsx)", type=["xlsx"])
    if uploaded:
        if uploaded.size > get_settings().app.max_upload_size_bytes:
            st.error("File is too large.")
            return
        try:
            parsed = master_data.parse_party_workbook(uploaded.getvalue())
        except InvalidInputError as e:
            st.error(str(e))
            return
        st.info(f"Parsed {len(parsed)} parties from the file.")
        if st.button("Replace All Parties", type="primary"):
            count = run_async(master_data.replace_parties(parsed, uploaded.name))
            st.success(f"Uploaded {count} parties.")


def render_templates_page(master_data: MasterDataFlow):
    """Render template maintenance."""
    st.title("📑 Templates")
    st.markdown("Templates are saved from the Create Credit Note page.")

    templates = run_async(master_data.list_templates())
    if not templates:
        st.info("No templates yet.")

    for template in templates:
        with st.expander(f"{template.name} · {template.party_name}"):
            name = st.text_input("Name", value=template.name, key=f"tn-{template.id}")
            purpose = st.text_area("Purpose", value=template.purpose, key=f"tp-{template.id}")
            pct = st.number_input(
                "CN Percentage",
                value=float(template.cn_percentage),
                min_value=0.0,
                max_value=100.0,
                key=f"tc-{template.id}",
            )
            c1, c2 = st.columns(2)
            if c1.button("Save", key=f"ts-{template.id}"):
                run_async(master_data.save_template(template.model_copy(update={
                    "name": name,
                    "purpose": purpose,
                    "cn_percentage": Decimal(str(pct)),
                })))
                st.success("Template updated.")
            if c2.button("Delete", key=f"td-{template.id}"):
                run_async(master_data.delete_template(template))
                st.rerun()


def render_settings_page(master_data: MasterDataFlow):
    """Render company settings and connection status."""
    st.title("⚙️ Settings")

    profile = run_async(master_data.get_profile())
    st.markdown("### Company")
    name = st.text_input("Company Name", value=profile.name)
    address_line1 = st.text_input("Address Line 1", value=profile.address_line1)
    address_line2 = st.text_input("Address Line 2", value=profile.address_line2)
    contact_info = st.text_input("Contact Info", value=profile.contact_info)
    c1, c2, c3 = st.columns(3)
    gstin = c1.text_input("GSTIN", value=profile.gstin)
    udyam = c2.text_input("UDYAM", value=profile.udyam)
    state_code = c3.text_input("State Code", value=profile.state_code)

    if st.button("Save Settings", type="primary"):
        run_async(master_data.update_profile(CompanyProfile(
            name=name,
            address_line1=address_line1,
            address_line2=address_line2,
            contact_info=contact_info,
            gstin=gstin,
            udyam=udyam,
            state_code=state_code,
        )))
        st.success("Settings saved.")

    st.markdown("---")
    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Firebase (Parties, Templates, Counter)", "firebase"),
        ("Apps Script (Register & Mail)", "script_endpoint"),
        ("Google Sheets (Register, read-only)", "google_sheets"),
    ]

    for label, key in services:
        if status.get(key, False):
            st.success(f"✅ {label} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {label} - {error}")

    st.markdown(
        "To configure the application, create a `.env` file with the "
        "FIREBASE_, APPS_SCRIPT_ and CN_ variables."
    )


def render_audit_page(audit_logger):
    """Render the most recent audit entries."""
    st.title("📜 Audit Log")

    if audit_logger.storage is None:
        st.info("Audit storage is not configured.")
        return

    events = run_async(audit_logger.storage.get_recent_events(limit=200))
    if not events:
        st.info("No audit entries yet.")
    for event in events:
        st.markdown(
            f"`{event.timestamp:%Y-%m-%d %H:%M:%S}` **{event.event_type.value}** {event.description}"
        )


if __name__ == "__main__":
    main()
