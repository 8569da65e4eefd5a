# qbgen/core/llm_config.py
import logging
import threading
from typing import Any, Callable, Optional

from qbgen.core.settings import settings, BaseConfig

log = logging.getLogger("core.llm")

def _norm(s: str | None) -> str:
    return (s or "").strip()

# 통일된 시그니처:
# chat_completion(messages, *, trace_id=None, temperature=None, max_tokens=None, timeout_s=None) -> str
# - timeout_s(초): SDK가 지원하는 범위에서 적용, 최종 타임아웃은 서비스 레이어(asyncio.wait_for)
# - trace_id: OpenAI v1 계열에서는 X-Request-Id 헤더로 전달
ChatCompletion = Callable[..., str]

_lock = threading.Lock()
_completion: Optional[ChatCompletion] = None


def _build_azure(cfg: BaseConfig) -> ChatCompletion:
    from openai import AzureOpenAI

    client = AzureOpenAI(
        api_key=_norm(cfg.AZURE_OPENAI_KEY),
        api_version=_norm(cfg.AZURE_OPENAI_API_VERSION),
        azure_endpoint=_norm(cfg.AZURE_OPENAI_ENDPOINT),
        max_retries=0,
    )
    model = _norm(cfg.AZURE_OPENAI_DEPLOYMENT) or "gpt-4o"
    return _openai_style(client, model, cfg)


def _build_openai(cfg: BaseConfig) -> ChatCompletion:
    from openai import OpenAI

    client = OpenAI(api_key=_norm(cfg.OPENAI_API_KEY), max_retries=0)
    return _openai_style(client, _norm(cfg.OPENAI_MODEL_NAME), cfg)


def _openai_style(client: Any, model: str, cfg: BaseConfig) -> ChatCompletion:
    def chat_completion(
        messages: list[dict],
        *,
        trace_id: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout_s: float | None = None,
    ) -> str:
        opts = {}
        if timeout_s is not None:
            opts["timeout"] = timeout_s
        if trace_id:
            opts["extra_headers"] = {"X-Request-Id": trace_id}

        c = client.with_options(**opts) if opts else client
        resp = c.chat.completions.create(
            model=model,
            messages=messages,
            temperature=temperature if temperature is not None else cfg.LLM_TEMPERATURE,
            max_tokens=max_tokens if max_tokens is not None else cfg.LLM_MAX_TOKENS,
        )
        return (resp.choices[0].message.content or "").strip() if resp.choices else ""

    return chat_completion


def _build_gemini(cfg: BaseConfig) -> ChatCompletion:
    import google.generativeai as genai

    genai.configure(api_key=_norm(cfg.GEMINI_API_KEY))
    model_name = _norm(cfg.GEMINI_MODEL_NAME) or "gemini-2.5-flash"

    def chat_completion(
        messages: list[dict],
        *,
        trace_id: str | None = None,      # 헤더 주입 미지원 → 로깅으로만 활용
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout_s: float | None = None,
    ) -> str:
        # system 메시지는 system_instruction으로, 나머지는 user/model 턴으로 전달
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        turns = [
            {"role": "model" if m["role"] == "assistant" else "user", "parts": [m["content"]]}
            for m in messages if m["role"] != "system"
        ]
        model = genai.GenerativeModel(model_name, system_instruction=system or None)
        request_options = {"timeout": timeout_s} if timeout_s is not None else None
        try:
            response = model.generate_content(
                turns,
                generation_config={
                    "temperature": temperature if temperature is not None else cfg.LLM_TEMPERATURE,
                    "max_output_tokens": max_tokens if max_tokens is not None else cfg.LLM_MAX_TOKENS,
                },
                request_options=request_options,
            )
        except Exception as e:
            log.warning("gemini_call_failed", extra={"trace_id": trace_id, "error": str(e)})
            raise

        if getattr(response, "candidates", None):
            parts = response.candidates[0].content.parts
            return "".join(getattr(p, "text", "") or "" for p in parts).strip()
        return ""

    return chat_completion


_BUILDERS = {
    "azure": _build_azure,
    "openai": _build_openai,
    "gemini": _build_gemini,
}


def get_chat_completion(cfg: Optional[BaseConfig] = None) -> ChatCompletion:
    """Provider adapter for the configured LLM, built once on first use."""
    global _completion
    if cfg is not None:
        return _BUILDERS[cfg.LLM_PROVIDER](cfg)
    with _lock:
        if _completion is None:
            _completion = _BUILDERS[settings.LLM_PROVIDER](settings)
            log.info("llm_provider_ready", extra={"provider": settings.LLM_PROVIDER})
        return _completion


def reset_chat_completion() -> None:
    global _completion
    with _lock:
        _completion = None
