"""
Alert email templates.

Each builder returns ``(subject, html)``. Templates share one frame so every
alert carries the same header and footer.
"""
from datetime import datetime
from html import escape
from typing import Iterable, Optional, Tuple

APP_NAME = "Comprint Operations"

Email = Tuple[str, str]


def _frame(title: str, title_color: str, accent: str, recipient_name: str, intro: str, rows: str, closing: str) -> str:
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <div style="background: {accent}; padding: 20px; text-align: center;">
            <h1 style="color: white; margin: 0;">{APP_NAME}</h1>
        </div>
        <div style="padding: 30px; background: #f9fafb;">
            <h2 style="color: {title_color}; margin-top: 0;">{title}</h2>
            <p style="color: #4b5563;">Hi {escape(recipient_name)},</p>
            <p style="color: #4b5563;">{intro}</p>
            <div style="background: white; border-radius: 8px; padding: 20px; margin: 20px 0; border-left: 4px solid {accent};">
                {rows}
            </div>
            <p style="color: #4b5563;">{closing}</p>
        </div>
        <div style="background: #1f2937; padding: 15px; text-align: center;">
            <p style="color: #9ca3af; margin: 0; font-size: 12px;">{APP_NAME} - Automated Notification</p>
        </div>
    </div>
    """


def _row(label: str, value, color: Optional[str] = None) -> str:
    style = f' color: {color};' if color else ""
    return f'<p style="margin: 5px 0;{style}"><strong>{label}:</strong> {escape(str(value))}</p>'


def _fmt(value: datetime) -> str:
    return value.strftime("%d %b %Y %H:%M UTC")


def tat_approaching_email(
    recipient_name: str,
    device_barcode: str,
    device_model: str,
    due_date: datetime,
    hours_remaining: int,
) -> Email:
    subject = f"TAT Alert: Device {device_barcode} due in {hours_remaining} hours"
    rows = "".join([
        _row("Device", device_barcode),
        _row("Model", device_model),
        _row("Due Date", _fmt(due_date)),
        _row("Time Remaining", f"{hours_remaining} hours", "#F59E0B"),
    ])
    html = _frame(
        "TAT Deadline Approaching", "#1f2937", "#F59E0B", recipient_name,
        "The following device is approaching its TAT deadline:", rows,
        "Please prioritize this device to meet the SLA.",
    )
    return subject, html


def tat_breached_email(
    recipient_name: str,
    device_barcode: str,
    device_model: str,
    due_date: datetime,
    days_overdue: int,
) -> Email:
    subject = f"URGENT: TAT Breached - Device {device_barcode} is {days_overdue} days overdue"
    rows = "".join([
        _row("Device", device_barcode),
        _row("Model", device_model),
        _row("Due Date", _fmt(due_date)),
        _row("Days Overdue", days_overdue, "#EF4444"),
    ])
    html = _frame(
        "TAT BREACHED", "#DC2626", "#EF4444", recipient_name,
        "The following device has exceeded its TAT deadline:", rows,
        "<strong>Immediate action required!</strong>",
    )
    return subject, html


def po_aging_email(
    recipient_name: str,
    po_number: str,
    supplier_code: Optional[str],
    expected_devices: int,
    created_at: datetime,
    days_old: int,
) -> Email:
    subject = f"PO Aging Alert: {po_number} unaddressed for {days_old} days"
    rows = "".join([
        _row("PO Number", po_number),
        _row("Supplier", supplier_code or "-"),
        _row("Expected Devices", expected_devices),
        _row("Created", _fmt(created_at)),
        _row("Age", f"{days_old} days", "#EF4444"),
    ])
    html = _frame(
        "Purchase Order Not Addressed", "#DC2626", "#EF4444", recipient_name,
        "The following purchase order has not been addressed:", rows,
        "Please review the purchase order and receive or close it.",
    )
    return subject, html


def spares_requested_email(
    recipient_name: str,
    device_barcode: str,
    device_model: str,
    spares_required: str,
    requested_by: str,
) -> Email:
    subject = f"Spares Request: {device_barcode} needs parts"
    rows = "".join([
        _row("Device", device_barcode),
        _row("Model", device_model),
        _row("Required Spares", spares_required),
        _row("Requested By", requested_by),
    ])
    html = _frame(
        "Spares Request", "#1f2937", "#3B82F6", recipient_name,
        "A new spares request has been submitted:", rows,
        "Please review and issue the required spares.",
    )
    return subject, html


def qc_failed_email(
    recipient_name: str,
    device_barcode: str,
    device_model: str,
    remarks: str,
    qc_engineer: str,
) -> Email:
    subject = f"QC Failed: {device_barcode} requires rework"
    rows = "".join([
        _row("Device", device_barcode),
        _row("Model", device_model),
        _row("QC Engineer", qc_engineer),
        _row("Remarks", remarks or "No remarks provided"),
    ])
    html = _frame(
        "QC Failed - Rework Required", "#D97706", "#F59E0B", recipient_name,
        "A device has failed QC and requires rework:", rows,
        "Please address the issues and resubmit for QC.",
    )
    return subject, html


def paint_ready_email(
    recipient_name: str,
    device_barcode: str,
    device_model: str,
    panels: Iterable[str],
) -> Email:
    subject = f"Paint Ready: {device_barcode} panels ready for collection"
    panel_items = "".join(f'<li style="color: #059669;">{escape(p)}</li>' for p in panels)
    rows = "".join([
        _row("Device", device_barcode),
        _row("Model", device_model),
        f'<p style="margin: 5px 0;"><strong>Ready Panels:</strong></p>'
        f'<ul style="margin: 10px 0; padding-left: 20px;">{panel_items}</ul>',
    ])
    html = _frame(
        "Paint Panels Ready", "#059669", "#10B981", recipient_name,
        "Paint panels are ready for collection:", rows,
        "Please collect the panels from the paint shop.",
    )
    return subject, html
