"""
Shared state sync server 패키지.

서버 구성 요소는 다음 하위 모듈에 정리되어 있다.
- protocol: Envelope 생성 및 JSON 직렬화
- store: 단일 문서 레코드 영속화
- state: 기본 문서, 로드/스탬프/저장
- sessions: 세션 및 세션 레지스트리
- broadcast: 라이브 세션 전체로의 상태 푸시
- lifecycle: WebSocket 연결 수명 주기 처리
- api: HTTP 라우팅/검증 (FastAPI)
- main: 서버 진입점
"""

__all__ = [
    "api",
    "broadcast",
    "lifecycle",
    "protocol",
    "sessions",
    "state",
    "store",
]
