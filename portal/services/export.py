# Tabular views and Excel export of a dashboard's records
import io
import re
from typing import Iterable

import pandas as pd
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from portal.domains import DomainDescriptor
from portal.models.profile import NOT_INFORMED
from portal.models.submission import Submission

CANCELLED_STATUSES = ("Cancelado",)
MAX_SHEET_TITLE = 31
STATUS_COLORS = {"green": "C6EFCE", "red": "FFC7CE", "yellow": "FFEB9C", "blue": "DDEBF7"}


def field_title(domain: DomainDescriptor, field: str) -> str:
    info = domain.form_model.model_fields.get(field)
    if info is not None and info.title:
        return info.title
    return field.replace("_", " ").capitalize()


def submissions_frame(domain: DomainDescriptor, records: Iterable[Submission]) -> pd.DataFrame:
    """One row per submission, with the form fields spread into columns."""
    form_fields = list(domain.form_model.model_fields)
    rows = []
    for record in records:
        applicant = record.dados_usuario or {}
        row = {"ID": record.id}
        if domain.issues_protocol:
            row["Protocolo"] = record.protocolo
        row.update({
            "Data": record.created_at,
            "status": record.status,
            "Identificação": record.identificacao,
            "Solicitante": "Anônimo" if record.is_anonymous else applicant.get("name", NOT_INFORMED),
            "E-mail": applicant.get("email"),
        })
        for field in form_fields:
            row[field_title(domain, field)] = record.dados_solicitacao.get(field)
        row["Mensagens"] = len(record.messages)
        row["Anexos"] = len(record.anexos)
        rows.append(row)
    df = pd.DataFrame(rows)
    if "Data" in df.columns:
        df["Data"] = pd.to_datetime(df["Data"], utc=True, errors="coerce")
    return df


def sheet_title(title: str) -> str:
    return re.sub(r"[\[\]:*?/\\]", " ", title)[:MAX_SHEET_TITLE] or "Relatório"


def to_excel(df: pd.DataFrame, domain: DomainDescriptor, title: str = "Relatório") -> bytes:
    output = io.BytesIO()
    title = sheet_title(title)
    df_copy = df.copy()
    for col in df_copy.select_dtypes(include=['datetimetz']).columns:
        df_copy[col] = df_copy[col].dt.tz_localize(None)
    with pd.ExcelWriter(output, engine='openpyxl') as writer:
        df_copy.to_excel(writer, index=False, sheet_name=title)
        worksheet = writer.sheets[title]
        header_fill = PatternFill(start_color="4F81BD", end_color="4F81BD", fill_type="solid")
        header_font = Font(color="FFFFFF", bold=True)
        border = Border(left=Side(style='thin'), right=Side(style='thin'), top=Side(style='thin'),
                        bottom=Side(style='thin'))
        header_alignment = Alignment(horizontal='center', vertical='center', wrap_text=True)
        cell_alignment = Alignment(horizontal='left', vertical='center')
        for col_num, col_name in enumerate(df_copy.columns, 1):
            cell = worksheet.cell(row=1, column=col_num)
            cell.fill, cell.font, cell.border, cell.alignment = header_fill, header_font, border, header_alignment
            longest = df_copy[col_name].map(lambda v: len(str(v)) if pd.notna(v) else 0).max() if len(df_copy) else 0
            worksheet.column_dimensions[get_column_letter(col_num)].width = min(max(longest, len(col_name)) + 2, 50)
        for row in worksheet.iter_rows(min_row=2, max_row=len(df_copy) + 1, max_col=len(df_copy.columns)):
            for cell in row:
                cell.border = border
                cell.alignment = cell_alignment
        if 'status' in df_copy.columns:
            status_col_index = df_copy.columns.get_loc('status') + 1
            for row in range(2, len(df_copy) + 2):
                cell = worksheet.cell(row=row, column=status_col_index)
                fill = status_fill(domain, cell.value)
                if fill is not None:
                    cell.fill = fill
        worksheet.freeze_panes = 'A2'
        worksheet.auto_filter.ref = worksheet.dimensions
    return output.getvalue()


def status_color(domain: DomainDescriptor, status) -> str:
    if status in domain.completed_statuses:
        return "green"
    if status in CANCELLED_STATUSES:
        return "red"
    if status == domain.initial_status:
        return "blue"
    return "yellow"


def status_fill(domain: DomainDescriptor, status):
    if not status:
        return None
    color = STATUS_COLORS[status_color(domain, status)]
    return PatternFill(start_color=color, end_color=color, fill_type="solid")

