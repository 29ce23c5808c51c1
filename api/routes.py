import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Response

from config import setup_logging
from main import compute_daily, compute_monthly, compute_monthly_batch
from models.errors import DataUnavailable, InvalidRange
from models.schema import BatchRequest, TimesheetConfig
from utils.formatter import format_batch_rows, format_day_row, format_month_report, month_to_csv

setup_logging()

app = FastAPI(title="Folha de Ponto")


def _config(intervalo_almoco_min: Optional[int], limite_almoco_min: Optional[int],
            jornada_min: Optional[int]) -> TimesheetConfig:
    overrides = {}
    if intervalo_almoco_min is not None:
        overrides["lunch_deduction_minutes"] = intervalo_almoco_min
    if limite_almoco_min is not None:
        overrides["lunch_threshold_minutes"] = limite_almoco_min
    if jornada_min is not None:
        overrides["expected_minutes_per_day"] = jornada_min
    try:
        return TimesheetConfig(**overrides)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def _monthly(employee_id: str, ano: int, mes: int, config: TimesheetConfig):
    try:
        return compute_monthly(employee_id, ano, mes, config)
    except InvalidRange as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except DataUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.get("/folha/{employee_id}/dia/{dia}")
def folha_diaria(employee_id: str, dia: str, intervalo_almoco_min: Optional[int] = None,
                 limite_almoco_min: Optional[int] = None, jornada_min: Optional[int] = None):
    config = _config(intervalo_almoco_min, limite_almoco_min, jornada_min)
    try:
        summary = compute_daily(employee_id, dia, config)
    except InvalidRange as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except DataUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {"resumo": summary.model_dump(mode="json"), "linha": format_day_row(summary)}


@app.get("/folha/{employee_id}/mes/{ano}/{mes}")
def folha_mensal(employee_id: str, ano: int, mes: int, intervalo_almoco_min: Optional[int] = None,
                 limite_almoco_min: Optional[int] = None, jornada_min: Optional[int] = None):
    config = _config(intervalo_almoco_min, limite_almoco_min, jornada_min)
    summary = _monthly(employee_id, ano, mes, config)
    return {"resumo": summary.model_dump(mode="json"), "relatorio": format_month_report(summary)}


@app.get("/folha/{employee_id}/mes/{ano}/{mes}/csv")
def folha_mensal_csv(employee_id: str, ano: int, mes: int, intervalo_almoco_min: Optional[int] = None,
                     limite_almoco_min: Optional[int] = None, jornada_min: Optional[int] = None):
    config = _config(intervalo_almoco_min, limite_almoco_min, jornada_min)
    summary = _monthly(employee_id, ano, mes, config)
    filename = f"folha_{employee_id}_{ano}-{mes:02d}.csv"
    return Response(
        content=month_to_csv(summary),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/folha/lote")
async def folha_lote(request: BatchRequest):
    try:
        items = await compute_monthly_batch(request.colaboradores, request.ano, request.mes, request.configuracao)
    except InvalidRange as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    logging.info(f"Batch request for {len(request.colaboradores)} employees answered")
    return {
        "itens": [item.model_dump(mode="json") for item in items],
        "linhas": format_batch_rows(items),
    }
