"""Bridge 예외 계층.

| 예외 | 처리 정책 |
|------|----------|
| TransientConnectionError | backoff 재연결 |
| PermanentAuthError | 해당 연결 종료, 자동 재시도 없음 |
| MalformedPayloadError | 폐기 (재전달 없음) |
| ValidationError | 폐기 (재전달 없음) |
| DependencyUnavailableError | requeue, 의존성 복구까지 무기한 재시도 |
| DeliveryFailure | 폐기 (일시/영구 구분 없음) |
| HandlerFault | 격리 후 로깅, 전파 안 함 |
"""


class BridgeError(Exception):
    """모든 Bridge 예외의 베이스 클래스."""

    def __init__(self, message: str = "Bridge error occurred") -> None:
        self.message = message
        super().__init__(message)


class TransientConnectionError(BridgeError):
    """일시적 연결 실패."""


class PermanentAuthError(BridgeError):
    """세션 로그아웃 또는 인증 철회."""


class MalformedPayloadError(BridgeError):
    """구조화된 payload로 파싱 불가."""


class ValidationError(BridgeError):
    """필수 필드 누락."""


class DependencyUnavailableError(BridgeError):
    """의존성(브로커/게이트웨이) 연결 끊김."""

    def __init__(self, dependency: str) -> None:
        self.dependency = dependency
        super().__init__(f"{dependency} connection not available")


class DeliveryFailure(BridgeError):
    """게이트웨이 전송 실패."""


class HandlerFault(BridgeError):
    """이벤트 핸들러 내부 오류."""

    def __init__(self, handler_name: str, event_name: str) -> None:
        self.handler_name = handler_name
        self.event_name = event_name
        super().__init__(f"Handler {handler_name} failed for event [{event_name}]")
