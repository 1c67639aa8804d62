from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import InvalidRepoUrlError
from ..services.reports import get_report, list_reports, report_detail, report_summary

router = APIRouter(prefix="/api/reports", tags=["reports"])


@router.get("")
def get_reports(repo_url: str | None = Query(None, alias="repoUrl"), db: Session = Depends(get_db)):
    if not repo_url:
        raise HTTPException(status_code=400, detail="Repository URL is required")
    try:
        reports = list_reports(db, repo_url)
    except InvalidRepoUrlError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return {"reports": [report_summary(r) for r in reports]}


@router.get("/{report_id}")
def get_report_by_id(report_id: int, db: Session = Depends(get_db)):
    report = get_report(db, report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return report_detail(report)
