# npwt/utils/export.py
import logging
from datetime import datetime
from io import BytesIO
from typing import Any, Dict, List, Optional

import pandas as pd
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

logger = logging.getLogger(__name__)

CONSUMPTION_COLUMNS = {
    "product_code": "Code",
    "product_name": "Produit",
    "category": "Catégorie",
    "total_consumed": "Quantité consommée",
    "unit_price": "Prix unitaire",
    "total_value": "Valeur totale",
    "procedures_count": "Procédures",
    "patients_count": "Patients",
}

INVENTORY_COLUMNS = {
    "product_code": "Code",
    "product_name": "Produit",
    "category": "Catégorie",
    "current_stock": "Stock actuel",
    "minimum_stock": "Stock minimum",
    "unit_price": "Prix unitaire",
    "stock_value": "Valeur du stock",
    "status": "Statut",
}

STATUS_LABELS = {
    "normal": "Normal",
    "low_stock": "Stock bas",
    "out_of_stock": "Rupture",
}


def _frame(rows: List[Dict[str, Any]], columns: Dict[str, str]) -> pd.DataFrame:
    df = pd.DataFrame(rows, columns=list(columns))
    if "status" in df.columns:
        df["status"] = df["status"].map(lambda s: STATUS_LABELS.get(s, s))
    return df.rename(columns=columns)


def export_to_csv_bytes(rows: List[Dict[str, Any]], columns: Dict[str, str], delimiter: str = ";") -> BytesIO:
    """CSV avec BOM pour une ouverture correcte dans Excel"""
    output = BytesIO()
    csv_text = _frame(rows, columns).to_csv(sep=delimiter, index=False)
    output.write(csv_text.encode("utf-8-sig"))
    output.seek(0)
    return output


def export_to_excel_bytes(
    rows: List[Dict[str, Any]],
    columns: Dict[str, str],
    sheet_name: str = "Données",
    title: Optional[str] = None,
) -> BytesIO:
    """
    Exporte vers un BytesIO (téléchargement direct)

    Args:
        rows: Lignes du rapport
        columns: Colonnes à exporter et leur libellé
        sheet_name: Nom de la feuille
        title: Titre écrit au-dessus du tableau
    """
    output = BytesIO()
    df = _frame(rows, columns)
    start_row = 2 if title else 0

    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=sheet_name, index=False, startrow=start_row)
        ws = writer.sheets[sheet_name]

        if title:
            ws["A1"] = title
            ws["A1"].font = Font(bold=True, size=14)

        header_row = start_row + 1
        for col_idx in range(1, len(df.columns) + 1):
            cell = ws.cell(row=header_row, column=col_idx)
            cell.font = Font(bold=True, color="FFFFFF")
            cell.fill = PatternFill(start_color="2E75B6", end_color="2E75B6", fill_type="solid")
            cell.alignment = Alignment(horizontal="center", vertical="center")

        _auto_adjust_column_width(ws)

    output.seek(0)
    return output


def _auto_adjust_column_width(ws):
    """Ajuste la largeur des colonnes (limite à 50 caractères)"""
    for column in ws.columns:
        values = [str(cell.value) for cell in column if cell.value is not None]
        max_length = max((len(v) for v in values), default=0)
        ws.column_dimensions[get_column_letter(column[0].column)].width = min(max_length + 2, 50)


def generate_export_filename(prefix: str, extension: str = "xlsx") -> str:
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"{prefix}_{timestamp}.{extension}"
