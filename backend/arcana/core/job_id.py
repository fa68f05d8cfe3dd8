"""
Job identifier generation and validation

Format: job-<unix milliseconds>-<9 lowercase alphanumerics>
"""
import re
import secrets
import string
import time
from typing import Optional

JOB_ID_PATTERN = re.compile(r"^job-\d+-[a-z0-9]{9}$")
_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
_SUFFIX_LENGTH = 9


def generate_job_id(now_ms: Optional[int] = None) -> str:
    """Generate a new job id, collision-resistant across concurrent callers"""
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"job-{timestamp}-{suffix}"


def is_valid_job_id(value: object) -> bool:
    return isinstance(value, str) and JOB_ID_PATTERN.match(value) is not None


def extract_timestamp_from_job_id(job_id: str) -> Optional[int]:
    """Return the embedded unix-ms timestamp, or None for malformed ids"""
    if not is_valid_job_id(job_id):
        return None
    return int(job_id.split("-")[1])
