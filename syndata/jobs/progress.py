"""Pipeline stage tracking and weighted progress."""

from __future__ import annotations

from typing import Dict, List, Optional

from syndata.core.documents import utcnow

STAGE_WEIGHTS: Dict[str, int] = {
    "initialization": 5,
    "data-processing": 15,
    "model-generation": 30,
    "data-generation": 35,
    "output-formatting": 10,
    "finalization": 5,
}

STAGE_STATUSES = ("pending", "running", "completed", "failed", "skipped")


def default_stages() -> List[dict]:
    return [
        {"name": name, "status": "pending", "progress": 0, "started_at": None, "completed_at": None}
        for name in STAGE_WEIGHTS
    ]


def calculate_progress(stages: List[dict]) -> int:
    """Overall percentage: finished stages count fully, a running one by its own progress."""
    total = 0.0
    for stage in stages or []:
        weight = STAGE_WEIGHTS.get(stage.get("name"), 0)
        status = stage.get("status")
        if status in ("completed", "skipped"):
            total += weight
        elif status == "running":
            pct = max(0, min(100, int(stage.get("progress") or 0)))
            total += weight * pct / 100
    return min(100, int(round(total)))


def update_stage(stages: List[dict], name: str, status: str, progress: Optional[int] = None) -> List[dict]:
    """Return a copy of `stages` with `name` updated; unknown names are appended."""
    if status not in STAGE_STATUSES:
        raise ValueError(f"Unknown stage status: {status}")

    now = utcnow()
    updated = [dict(s) for s in stages or []]
    stage = next((s for s in updated if s.get("name") == name), None)
    if stage is None:
        stage = {"name": name, "status": "pending", "progress": 0, "started_at": None, "completed_at": None}
        updated.append(stage)

    stage["status"] = status
    if status == "running" and not stage.get("started_at"):
        stage["started_at"] = now
    if status in ("completed", "failed", "skipped"):
        stage["completed_at"] = now
        if status == "completed":
            stage["progress"] = 100
    if progress is not None:
        stage["progress"] = max(0, min(100, int(progress)))
    return updated


def next_pending_stage(stages: List[dict]) -> Optional[dict]:
    """The first pending stage, provided the stage before it has completed."""
    for index, stage in enumerate(stages or []):
        if stage.get("status") == "pending":
            if index == 0 or stages[index - 1].get("status") in ("completed", "skipped"):
                return stage
            return None
    return None


def all_completed(stages: List[dict]) -> bool:
    return bool(stages) and all(s.get("status") in ("completed", "skipped") for s in stages)


def merge_pipeline_stages(stages: List[dict], reported: List[dict]) -> List[dict]:
    """Overlay the stage statuses the pipeline reported onto our stage list."""
    merged = [dict(s) for s in (stages or default_stages())]
    for item in reported or []:
        name = item.get("name")
        status = item.get("status")
        if not name or status not in STAGE_STATUSES:
            continue
        current = next((s for s in merged if s.get("name") == name), None)
        if current and current.get("status") == status and item.get("progress") in (None, current.get("progress")):
            continue
        merged = update_stage(merged, name, status, item.get("progress"))
    return merged
