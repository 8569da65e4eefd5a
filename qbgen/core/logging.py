# qbgen/core/logging.py
import logging
import json
import sys
import re
from datetime import datetime, timezone
from typing import Any, Dict

logger = logging.getLogger("qbgen")
logger.setLevel(logging.INFO)

# --- 민감정보 레드액션 ---
REDACT_PATTERNS = [
    re.compile(r"(Authorization:\s*)(Basic|Bearer)\s+[A-Za-z0-9\-\._~\+\/]+=*", re.IGNORECASE),
    re.compile(r"(api[_-]?key\s*[=:]\s*)[A-Za-z0-9\-_]{8,}", re.IGNORECASE),
    re.compile(r"()\bsk-[A-Za-z0-9\-_]{16,}"),
]

def _redact(text: str) -> str:
    if not isinstance(text, str):
        return text
    out = text
    for pat in REDACT_PATTERNS:
        out = pat.sub(r"\1***REDACTED***", out)
    return out

SAFE_ATTR_BLOCKLIST = {
    "args","asctime","created","exc_info","exc_text","filename",
    "funcName","levelname","levelno","lineno","module","msecs",
    "message","msg","name","pathname","process","processName",
    "relativeCreated","stack_info","thread","threadName","taskName",
}

class JsonFormatter(logging.Formatter):
    """
    표준 JSON 로그 포맷:
    {
      "ts": "2026-10-19T01:23:45.678Z",
      "ts_ms": 1792373025678,
      "level": "INFO",
      "logger": "qbgen.pipeline",
      "msg": "batch_parsed",
      "req_id": "...",
      "phase": "repair",
      "recovered": 3,
      ... (extra)
    }
    """
    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "ts": now.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "ts_ms": int(now.timestamp() * 1000),
            "level": record.levelname,
            "logger": record.name,
        }

        payload["msg"] = _redact(record.getMessage())

        # extra 필드
        for k, v in record.__dict__.items():
            if k in SAFE_ATTR_BLOCKLIST:
                continue
            if k == "trace_id" and "req_id" not in payload:
                payload["req_id"] = v
            else:
                payload[k] = _redact(v) if isinstance(v, str) else v

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        try:
            return json.dumps(payload, ensure_ascii=False, default=str)
        except TypeError:
            safe = {k: (str(v) if not isinstance(v, (str, int, float, bool, type(None), dict, list)) else v)
                    for k, v in payload.items()}
            return json.dumps(safe, ensure_ascii=False)

def configure_logging(level: str = "INFO") -> None:
    """
    - 루트/uvicorn 로거를 모두 JSON 포맷으로 교체
    - 콘솔(stdout) 출력
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        lg.handlers.clear()
        lg.addHandler(handler)
        lg.setLevel(level.upper())

    # SDK 로거는 요청 본문을 찍으므로 한 단계 낮춘다
    for name in ("httpx", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)

def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)

def clip(s: Any, n: int = 500) -> str:
    """Shorten model output for log lines"""
    s = s if isinstance(s, str) else str(s)
    return s if len(s) <= n else (s[:n] + "...<clipped>")
