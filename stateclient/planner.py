"""
플래너 계산 (순수 함수)
-----------------------
- 취침 시간 "HH:MM" 파싱/검증
- 할 일별 타이머 누적 시간과 시작/정지
- 계획/실제 합계, 취침까지 남은 시간, 여유 시간, 부하율
모든 함수는 현재 시각(ms)을 인자로 받으며 입력 dict를 변경하지 않는다.
"""

from __future__ import annotations

import math
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

MINUTE_MS = 60_000

# 유효한 취침 시간: 14:00 초과, 23:59 미만
BEDTIME_MIN_EXCLUSIVE = 14 * 60
BEDTIME_MAX_EXCLUSIVE = 23 * 60 + 59

# 부하율 상한 (150%)
PROGRESS_CAP = 1.5

_TIME_RE = re.compile(r"^(\d{2}):(\d{2})$")


def clamp_int(value: Any, lo: int = 0, hi: int = 10_000) -> int:
    try:
        n = int(value) if isinstance(value, float) else int(str(value).strip())
    except (ValueError, OverflowError):
        return lo
    return max(lo, min(hi, n))


def parse_time_to_minutes(text: Any) -> Optional[int]:
    """"HH:MM" -> 자정 기준 분. 형식이 틀리면 None."""
    if not isinstance(text, str):
        return None
    m = _TIME_RE.match(text)
    if not m:
        return None
    hh, mm = int(m.group(1)), int(m.group(2))
    if hh > 23 or mm > 59:
        return None
    return hh * 60 + mm


def is_bedtime_valid(text: Any) -> bool:
    mins = parse_time_to_minutes(text)
    if mins is None:
        return False
    return BEDTIME_MIN_EXCLUSIVE < mins < BEDTIME_MAX_EXCLUSIVE


def bedtime_minutes(text: Any) -> Optional[int]:
    if not is_bedtime_valid(text):
        return None
    return parse_time_to_minutes(text)


def bedtime_at_ms(minutes: int, now_ms: int) -> int:
    """now_ms 가 속한 (로컬) 날짜의 해당 시각을 epoch ms로."""
    today = datetime.fromtimestamp(now_ms / 1000)
    bed = today.replace(hour=minutes // 60, minute=minutes % 60, second=0, microsecond=0)
    return int(bed.timestamp() * 1000)


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


# ---------- 타이머 ----------
def task_timer_ms(task: Dict[str, Any], now_ms: int) -> int:
    acc = _number(task.get("timerAccumulatedMs")) or 0
    started = _number(task.get("timerStartedAtMs"))
    if task.get("timerRunning") and started is not None:
        return int(acc + max(0, now_ms - started))
    return int(acc)


def ms_to_minutes_ceil(ms: float) -> int:
    # 1초라도 흘렀으면 1분으로 올림
    if ms <= 0:
        return 0
    return math.ceil(ms / MINUTE_MS)


def stop_timer_fields(task: Dict[str, Any], now_ms: int) -> Dict[str, Any]:
    """실행 중인 타이머를 누적시키고 actualMin 을 갱신한 사본을 반환."""
    started = _number(task.get("timerStartedAtMs"))
    if not task.get("timerRunning") or started is None:
        return task
    acc = task_timer_ms(task, now_ms)
    return dict(
        task,
        timerRunning=False,
        timerStartedAtMs=None,
        timerAccumulatedMs=acc,
        actualMin=ms_to_minutes_ceil(acc),
    )


def start_timer(todos: List[Dict[str, Any]], todo_id: Any, now_ms: int) -> List[Dict[str, Any]]:
    """todo_id 의 타이머를 시작. 다른 실행 중 타이머는 먼저 정지된다."""
    out = []
    for todo in todos:
        if todo.get("timerRunning"):
            todo = stop_timer_fields(todo, now_ms)
        if todo.get("id") == todo_id and not todo.get("done"):
            todo = dict(todo, timerRunning=True, timerStartedAtMs=now_ms)
        out.append(todo)
    return out


def stop_timer(todos: List[Dict[str, Any]], todo_id: Any, now_ms: int) -> List[Dict[str, Any]]:
    return [stop_timer_fields(t, now_ms) if t.get("id") == todo_id else t for t in todos]


def set_done(todos: List[Dict[str, Any]], todo_id: Any, done: bool, now_ms: int) -> List[Dict[str, Any]]:
    """완료 처리 시 타이머를 멈추고, 실제 시간이 비어 있으면 계획 시간으로 채운다."""
    out = []
    for todo in todos:
        if todo.get("id") == todo_id:
            if done:
                todo = stop_timer_fields(todo, now_ms)
                if todo.get("actualMin") is None:
                    todo = dict(todo, actualMin=todo.get("plannedMin"))
            todo = dict(todo, done=done)
        out.append(todo)
    return out


# ---------- 집계 ----------
def get_sums(todos: List[Dict[str, Any]]) -> Dict[str, int]:
    planned_not_done = 0
    actual_done = 0
    for todo in todos:
        if todo.get("done"):
            actual_done += clamp_int(todo.get("actualMin") or 0)
        else:
            planned_not_done += clamp_int(todo.get("plannedMin") or 0)
    return {
        "plannedNotDoneMin": planned_not_done,
        "actualDoneMin": actual_done,
        "totalWorkMin": planned_not_done,
    }


def time_until_bed_ms(minutes: Optional[int], now_ms: int) -> Optional[int]:
    if minutes is None:
        return None
    return bedtime_at_ms(minutes, now_ms) - now_ms


def buffer_ms(until_bed_ms: Optional[int], total_work_min: int) -> Optional[int]:
    """취침까지 남은 시간에서 남은 작업 시간을 뺀 여유. 음수면 부족."""
    if until_bed_ms is None:
        return None
    return until_bed_ms - total_work_min * MINUTE_MS


def completion_at_ms(now_ms: int, total_work_min: int) -> int:
    return now_ms + total_work_min * MINUTE_MS


def progress(until_bed_ms: Optional[int], total_work_min: int) -> Optional[int]:
    """남은 시간 대비 작업 부하율(%), 0~150."""
    if until_bed_ms is None:
        return None
    busy = (total_work_min * MINUTE_MS) / max(1, until_bed_ms)
    return math.floor(max(0.0, min(PROGRESS_CAP, busy)) * 100 + 0.5)


def has_done_without_actual(todos: List[Dict[str, Any]]) -> bool:
    return any(t.get("done") and t.get("actualMin") is None for t in todos)


def format_duration_ms(ms: float) -> str:
    sign = "-" if ms < 0 else ""
    total_seconds = int(abs(ms) // 1000)
    h, rest = divmod(total_seconds, 3600)
    m, s = divmod(rest, 60)
    return f"{sign}{h:02d}:{m:02d}:{s:02d}"


__all__ = [
    "bedtime_minutes",
    "buffer_ms",
    "clamp_int",
    "completion_at_ms",
    "format_duration_ms",
    "get_sums",
    "has_done_without_actual",
    "is_bedtime_valid",
    "ms_to_minutes_ceil",
    "parse_time_to_minutes",
    "progress",
    "set_done",
    "start_timer",
    "stop_timer",
    "stop_timer_fields",
    "task_timer_ms",
    "time_until_bed_ms",
]
