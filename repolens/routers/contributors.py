import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse

from ..dependencies import get_github_factory, limiter
from ..errors import InvalidRepoUrlError, RepoLensError
from ..schemas import Commit, Contributor
from ..services.github import bearer_token, parse_repo_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/contributors", tags=["contributors"])

PERIOD_DAYS = {"week": 7, "month": 30, "year": 365}
TOP_CONTRIBUTORS = 10
TIMELINE_WEEKS = 12


def _commit_time(commit: Commit) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(commit.author.date.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def contributor_stats(
    contributors: list[Contributor],
    commits: list[Commit],
    period: str,
    now: datetime | None = None,
) -> dict:
    """Recent commit activity per contributor for week/month/year."""
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=PERIOD_DAYS.get(period, PERIOD_DAYS["month"]))
    recent = [c for c in commits if (t := _commit_time(c)) is not None and t >= since]

    stats = {
        c.login: {
            **c.to_json_dict(),
            "recentCommits": 0,
            "totalCommits": c.contributions,
            "additions": 0,
            "deletions": 0,
        }
        for c in contributors
    }
    for commit in recent:
        entry = stats.get(commit.author.name)
        if entry is None:
            continue
        entry["recentCommits"] += 1
        if commit.stats:
            entry["additions"] += commit.stats.additions
            entry["deletions"] += commit.stats.deletions

    ranked = sorted(stats.values(), key=lambda s: s["recentCommits"], reverse=True)
    return {
        "period": period,
        "totalCommits": len(recent),
        "totalContributors": sum(1 for s in stats.values() if s["recentCommits"] > 0),
        "topContributors": ranked[:TOP_CONTRIBUTORS],
    }


def activity_timeline(commits: list[Commit], now: datetime | None = None) -> list[dict]:
    """Commit counts for each of the last 12 weeks, oldest first."""
    now = now or datetime.now(timezone.utc)
    times = [t for c in commits if (t := _commit_time(c)) is not None]
    timeline = []
    for i in range(TIMELINE_WEEKS - 1, -1, -1):
        week_start = now - timedelta(days=i * 7 + 7)
        week_end = now - timedelta(days=i * 7)
        timeline.append({
            "week": week_start.date().isoformat(),
            "commits": sum(1 for t in times if week_start <= t < week_end),
        })
    return timeline


def _parse_or_400(repo_url: str | None):
    if not repo_url:
        return None, JSONResponse(status_code=400, content={"error": "Repository URL is required in query parameters"})
    try:
        return parse_repo_url(repo_url), None
    except InvalidRepoUrlError:
        return None, JSONResponse(status_code=400, content={"error": "Invalid GitHub repository URL"})


@router.get("/stats")
@limiter.limit("30/minute")
async def get_contributor_stats(
    request: Request,
    repo_url: str | None = Query(None, alias="repoUrl"),
    period: str = Query("month"),
    authorization: str | None = Header(None),
    github_factory=Depends(get_github_factory),
):
    parts, error = _parse_or_400(repo_url)
    if error:
        return error
    owner, repo = parts

    async with github_factory(token=bearer_token(authorization)) as github:
        try:
            contributors = await github.get_contributors(owner, repo)
            commits = await github.get_commits(owner, repo)
        except RepoLensError as e:
            logger.error(f"Error fetching contributor stats for {owner}/{repo}: {e.message}")
            return JSONResponse(status_code=500, content={"error": e.message})

    return contributor_stats(contributors, commits, period)


@router.get("/{login}")
@limiter.limit("30/minute")
async def get_contributor_details(
    request: Request,
    login: str,
    repo_url: str | None = Query(None, alias="repoUrl"),
    authorization: str | None = Header(None),
    github_factory=Depends(get_github_factory),
):
    parts, error = _parse_or_400(repo_url)
    if error:
        return error
    owner, repo = parts

    async with github_factory(token=bearer_token(authorization)) as github:
        try:
            contributors = await github.get_contributors(owner, repo)
            contributor = next((c for c in contributors if c.login == login), None)
            if contributor is None:
                return JSONResponse(status_code=404, content={"error": "Contributor not found in this repository"})
            commits = await github.get_commits(owner, repo)
        except RepoLensError as e:
            logger.error(f"Error fetching contributor {login} for {owner}/{repo}: {e.message}")
            return JSONResponse(status_code=500, content={"error": e.message})

    own = [c for c in commits if c.author.name == login]
    own.sort(key=lambda c: c.author.date, reverse=True)
    additions = sum(c.stats.additions for c in own if c.stats)
    deletions = sum(c.stats.deletions for c in own if c.stats)

    return {
        "login": contributor.login,
        "avatarUrl": contributor.avatar_url,
        "profileUrl": contributor.html_url or f"https://github.com/{contributor.login}",
        "stats": {
            "totalCommits": len(own),
            "totalAdditions": additions,
            "totalDeletions": deletions,
            "linesChanged": additions + deletions,
        },
        "recentCommits": [
            {
                "sha": c.sha,
                "message": c.message,
                "date": c.author.date,
                "additions": c.stats.additions if c.stats else 0,
                "deletions": c.stats.deletions if c.stats else 0,
            }
            for c in own[:10]
        ],
        "activityTimeline": activity_timeline(own),
    }
