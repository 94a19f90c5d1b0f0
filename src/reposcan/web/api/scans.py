"""REST API for repository scans."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from reposcan.scanner.service import JobNotFoundError
from reposcan.scanner.validator import ValidationError

router = APIRouter(tags=["scans"])


class ScanRequest(BaseModel):
    repo_url: str = ""


@router.post("/scan", status_code=202)
async def start_scan(body: ScanRequest, request: Request):
    service = request.app.state.service
    try:
        job = await service.start_scan(body.repo_url)
    except ValidationError as e:
        return JSONResponse(status_code=400, content=e.to_dict())
    return job.to_dict()


# Declared before /scan/{job_id} so "config" is not taken for an id
@router.get("/scan/config")
async def get_scan_config(request: Request):
    return request.app.state.service.get_config()


@router.get("/scan/{job_id}")
async def get_scan(job_id: str, request: Request):
    try:
        job = await request.app.state.service.get_job(job_id)
    except JobNotFoundError:
        return JSONResponse(
            status_code=404,
            content={"detail": "Scan job not found"},
        )
    return job.to_dict()
