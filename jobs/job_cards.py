# jobs/job_cards.py
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

# -------------------------------------------------------------------
# API job listing -> summary -> card (summary + per-user annotations)
# -------------------------------------------------------------------


class JobSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    slug: str = ""
    company: str = ""
    location: str = ""
    country: str = ""
    work_mode: str = ""
    job_type: str = ""
    experience_level: str = ""
    salary: str = ""
    posted_at: str = ""
    apply_url: str = ""
    has_visa_sponsorship: bool = False


def _safe_str(x: Any) -> str:
    return str(x).strip() if x is not None else ""


def _label(val: Any) -> str:
    """The API sends enums as {value, label}; older payloads send bare strings."""
    if isinstance(val, dict):
        return _safe_str(val.get("value") or val.get("label"))
    return _safe_str(val)


def _first(items: Any) -> Dict[str, Any]:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return {}


def _salary(val: Any) -> str:
    if not isinstance(val, dict):
        return _safe_str(val)
    if val.get("formatted"):
        return _safe_str(val["formatted"])
    lo, hi, cur = _amount(val.get("min")), _amount(val.get("max")), _safe_str(val.get("currency"))
    if not lo and not hi:
        return ""
    if lo and hi:
        return f"{cur} {lo} - {hi}".strip()
    return f"{cur} {lo or hi}".strip()


def _amount(x: Any) -> str:
    if x is None or x == "":
        return ""
    try:
        return f"{int(float(x)):,}"
    except (TypeError, ValueError):
        return _safe_str(x)


def to_job_summary(job: Dict[str, Any]) -> Optional[JobSummary]:
    job_id = _safe_str(job.get("id"))
    if not job_id:
        return None

    company = _first(job.get("companies"))
    company_name = _safe_str(company.get("name")) or _label(job.get("company"))

    loc = _first(job.get("locations"))
    location = _safe_str(loc.get("name")) or _label(job.get("location"))

    timing = job.get("timing") if isinstance(job.get("timing"), dict) else {}
    application = job.get("application") if isinstance(job.get("application"), dict) else {}

    return JobSummary(
        id=job_id,
        title=_safe_str(job.get("title")),
        slug=_safe_str(job.get("slug")),
        company=company_name,
        location=location,
        country=_safe_str(loc.get("country")),
        work_mode=_label(job.get("work_mode")),
        job_type=_label(job.get("job_type")),
        experience_level=_label(job.get("experience_level")),
        salary=_salary(job.get("salary")),
        posted_at=_safe_str(timing.get("posted_at")),
        apply_url=_safe_str(application.get("url")),
        has_visa_sponsorship=bool(job.get("visa_sponsorship")),
    )


def to_job_summaries(jobs: Optional[List[Dict[str, Any]]]) -> List[JobSummary]:
    """Normalize raw listings, keeping API order and dropping entries without an id."""
    out: List[JobSummary] = []
    for j in (jobs or []):
        if not isinstance(j, dict):
            continue
        summary = to_job_summary(j)
        if summary is not None:
            out.append(summary)
    return out


def to_job_cards(
    jobs: List[JobSummary],
    *,
    is_saved: Callable[[str], bool],
    is_pending: Optional[Callable[[str], bool]] = None,
) -> List[Dict[str, Any]]:
    """
    Render payloads for the list view. Order is the API's; saved state is an
    annotation only and never filters or reorders the list.
    """
    cards: List[Dict[str, Any]] = []
    for j in jobs:
        cards.append(
            {
                **j.model_dump(),
                "is_saved": bool(is_saved(j.id)),
                "save_pending": bool(is_pending(j.id)) if is_pending else False,
            }
        )
    return cards
