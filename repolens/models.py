"""
SQLAlchemy models for RepoLens report history
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Repo(Base):
    """A GitHub repository that has been analyzed at least once"""
    __tablename__ = "repos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner = Column(String, nullable=False)
    name = Column(String, nullable=False)
    github_link = Column(String, nullable=False, unique=True)
    stars = Column(Integer, default=0)
    languages = Column(Text)  # JSON stored as TEXT
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    reports = relationship(
        "AnalysisReport",
        back_populates="repo",
        cascade="all, delete-orphan",
        order_by="AnalysisReport.created_at.desc()",
    )

    def __repr__(self):
        return f"<Repo(id={self.id}, github_link='{self.github_link}')>"


class AnalysisReport(Base):
    """One completed analysis; the full result is kept as JSON"""
    __tablename__ = "analysis_reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    repo_id = Column(Integer, ForeignKey("repos.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    summary = Column(Text)
    security_issue_count = Column(Integer, default=0, nullable=False)
    total_commits = Column(Integer, default=0, nullable=False)
    payload = Column(Text, nullable=False)  # AnalysisResult JSON (camelCase)

    repo = relationship("Repo", back_populates="reports")

    def __repr__(self):
        return f"<AnalysisReport(id={self.id}, repo_id={self.repo_id})>"
