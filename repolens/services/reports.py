"""Report history: persisted AnalysisResults, newest first per repository."""

import json
import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import AnalysisReport, Repo
from ..schemas import AnalysisResult
from .github import parse_repo_url

logger = logging.getLogger(__name__)


def normalize_repo_link(repo_url: str) -> str:
    owner, name = parse_repo_url(repo_url)
    return f"https://github.com/{owner}/{name}"


def get_or_create_repo(session: Session, repo_url: str) -> Repo:
    """Get existing repo or create new one. Handles concurrent inserts."""
    link = normalize_repo_link(repo_url)
    repo = session.query(Repo).filter(Repo.github_link == link).first()

    if not repo:
        owner, name = parse_repo_url(repo_url)
        try:
            repo = Repo(owner=owner, name=name, github_link=link, stars=0, languages="{}")
            session.add(repo)
            session.flush()
        except IntegrityError:
            # Another request created it first
            session.rollback()
            repo = session.query(Repo).filter(Repo.github_link == link).first()
            if not repo:
                raise

    return repo


def save_report(session: Session, result: AnalysisResult) -> AnalysisReport:
    repo = get_or_create_repo(session, result.repository_url)
    repo.stars = result.repository.stars
    repo.languages = json.dumps(result.languages)

    report = AnalysisReport(
        repo_id=repo.id,
        summary=result.ai_summary,
        security_issue_count=len(result.security_issues),
        total_commits=result.metrics.total_commits,
        payload=json.dumps(result.to_json_dict()),
    )
    session.add(report)
    session.commit()
    session.refresh(report)
    logger.info(f"Saved report {report.id} for {repo.github_link}")
    return report


def list_reports(session: Session, repo_url: str) -> list[AnalysisReport]:
    link = normalize_repo_link(repo_url)
    return (
        session.query(AnalysisReport)
        .join(Repo)
        .filter(Repo.github_link == link)
        .order_by(AnalysisReport.created_at.desc(), AnalysisReport.id.desc())
        .all()
    )


def get_report(session: Session, report_id: int) -> AnalysisReport | None:
    return session.get(AnalysisReport, report_id)


def report_summary(report: AnalysisReport) -> dict[str, Any]:
    return {
        "id": report.id,
        "repositoryUrl": report.repo.github_link,
        "createdAt": report.created_at.isoformat(),
        "summary": report.summary,
        "securityIssueCount": report.security_issue_count,
        "totalCommits": report.total_commits,
    }


def report_detail(report: AnalysisReport) -> dict[str, Any]:
    return {**report_summary(report), "result": json.loads(report.payload)}
