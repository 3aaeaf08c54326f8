import time
import uuid
from typing import Any, Dict, Optional

_jobs: Dict[str, Dict[str, Any]] = {}


def create_job(kind: str) -> str:
    job_id = str(uuid.uuid4())
    _jobs[job_id] = {"job_id": job_id, "kind": kind, "status": "pending", "created_at": time.time()}
    return job_id


def _update(job_id: str, **fields: Any) -> None:
    if job_id in _jobs:
        _jobs[job_id].update(fields, updated_at=time.time())


def set_job_running(job_id: str) -> None:
    _update(job_id, status="running")


def set_job_result(job_id: str, result: Any) -> None:
    _update(job_id, status="done", result=result)


def set_job_error(job_id: str, error: str, guidance: Optional[str] = None) -> None:
    _update(job_id, status="error", error=error, guidance=guidance)


def get_job(job_id: str) -> Dict[str, Any]:
    job = _jobs.get(job_id)
    return dict(job) if job else {"job_id": job_id, "status": "not_found"}
