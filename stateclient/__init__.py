"""
Shared state 클라이언트 패키지.

- api: HTTP 로드/저장 및 WebSocket 구독
- planner: 취침 시간/타이머/여유 시간 계산 (순수 함수)
- app: PyQt5 데스크톱 클라이언트
"""

__all__ = [
    "api",
    "app",
    "planner",
]
