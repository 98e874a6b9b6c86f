"""Presentation Layer.

- gateway: 게이트웨이 이벤트 → Application
- consumer: 브로커 메시지 → ack/reject
- http: 전송 요청 / 헬스체크
"""
