from typing import Dict, List, Optional, Union

import pandas as pd

from models.schema import BatchItem, DayStatus, DaySummary, MonthSummary

STATUS_LABELS = {
    DayStatus.OK.value: "OK",
    DayStatus.PAR_INCOMPLETO.value: "Par Incompleto",
    DayStatus.SEM_REGISTRO.value: "Sem Registro",
}

CSV_COLUMNS = [
    "data",
    "dia",
    "batidas",
    "total_trabalhado",
    "horas_extras",
    "atrasos",
    "atraso_entrada",
    "faltas",
    "banco_horas_dia",
    "status",
]


def minutes_to_hhmm(minutes: int) -> str:
    """Render a non-negative minute count as ``HH:MM``; hours are unbounded."""
    if minutes < 0:
        raise ValueError(f"negative minutes must be signed by the caller: {minutes}")
    hours = minutes // 60
    remainder = minutes % 60
    return f"{hours:02d}:{remainder:02d}"


def hhmm_to_minutes(text: str) -> int:
    hours, _, minutes = text.partition(":")
    return int(hours) * 60 + int(minutes)


def balance_to_hhmm(minutes: int) -> str:
    sign = "-" if minutes < 0 else ""
    return sign + minutes_to_hhmm(abs(minutes))


def status_label(status: Union[DayStatus, str]) -> str:
    code = status.value if isinstance(status, DayStatus) else status
    return STATUS_LABELS.get(code, code)


def format_date_br(iso: str) -> str:
    year, month, day = iso.split("-")
    return f"{day}/{month}/{year}"


def format_day_row(day: DaySummary) -> Dict:
    observacao: Optional[str] = None if day.status == DayStatus.OK else day.status.value
    return {
        "data": day.day.isoformat(),
        "dia": day.day.day,
        "batidas": [e.timestamp.strftime("%H:%M") for e in day.events],
        "total_trabalhado": minutes_to_hhmm(day.net_minutes),
        "horas_extras": minutes_to_hhmm(day.overtime_minutes),
        "atrasos": minutes_to_hhmm(day.shortfall_minutes),
        "atraso_entrada": minutes_to_hhmm(day.lateness_minutes),
        "faltas": minutes_to_hhmm(day.absence_minutes),
        "banco_horas_dia": balance_to_hhmm(day.balance_minutes),
        "observacao": observacao,
        "status": status_label(day.status),
    }


def format_month_report(month: MonthSummary) -> Dict:
    return {
        "colaborador_id": month.employee_id,
        "periodo": {
            "mes": f"{month.year}-{month.month:02d}",
            "descricao": f"{month.month:02d}/{month.year}",
        },
        "diario": [format_day_row(d) for d in month.days],
        "mensal": {
            "total_horas_trabalhadas": minutes_to_hhmm(month.total_minutes),
            "total_horas_extras": minutes_to_hhmm(month.overtime_minutes),
            "total_atrasos": minutes_to_hhmm(month.shortfall_minutes),
            "total_atraso_entrada": minutes_to_hhmm(month.lateness_minutes),
            "total_faltas": minutes_to_hhmm(month.absence_minutes),
            "banco_horas_final": balance_to_hhmm(month.bank_balance_minutes),
            "dias_trabalhados": month.worked_days,
        },
    }


def format_batch_rows(items: List[BatchItem]) -> List[Dict]:
    rows = []
    for item in items:
        if item.summary is None:
            rows.append({
                "colaborador_id": item.employee_id,
                "dias_trabalhados": None,
                "total": None,
                "anomalias": None,
                "erro": item.error,
            })
            continue
        rows.append({
            "colaborador_id": item.employee_id,
            "dias_trabalhados": item.summary.worked_days,
            "total": minutes_to_hhmm(item.summary.total_minutes),
            "anomalias": item.summary.anomaly_days,
            "erro": None,
        })
    return rows


def month_to_csv(month: MonthSummary) -> str:
    rows = []
    for row in format_month_report(month)["diario"]:
        rows.append({
            **row,
            "data": format_date_br(row["data"]),
            "batidas": " / ".join(row["batidas"]) if row["batidas"] else "-",
        })
    df = pd.DataFrame(rows, columns=CSV_COLUMNS)
    return df.to_csv(index=False, sep=";")
