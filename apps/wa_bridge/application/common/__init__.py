"""Application 공통 (결과 타입, 포트)."""
